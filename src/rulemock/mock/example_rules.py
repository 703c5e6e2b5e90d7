"""
Example mock rules served by ``rulemock serve`` when no rules are given.
"""

from .generator import MockResponse, echo_context, template
from .matcher import all_of, any_of, body, header, method, not_, path, request
from .rules import MockRule


def _contract_response(req, ctx):
    return {'contentType': ctx['headers']['accept']}


def _is_open(payload):
    return isinstance(payload, dict) and payload.get('status') == 'open'


with_url_rule = MockRule(
    name='with-url',
    match=path('/api/with-url/:extra'),
    respond=echo_context(extra='yes')
)

dual_rule = MockRule(
    name='dual',
    match=request('get', '/api/dual'),
    respond=echo_context(dual=True)
)

or_rule = MockRule(
    name='get-or-dual',
    match=any_of([
        method('get'),
        path('/api/dual'),
    ]),
    respond=echo_context(dual=True)
)

merchant_rule = MockRule(
    name='merchant-contract',
    match=any_of([
        all_of([
            method('get'),
            path('/api/merchant/:merchantId'),
            header('accept', 'text/xml'),
        ]),
        all_of([
            method('post'),
            path('/api/merchant/:merchantId'),
            header('accept'),
            body(_is_open),
        ]),
    ]),
    respond=_contract_response
)

user_rule = MockRule(
    name='user-by-id',
    match=[method('get'), path('/api/users/:id(\\d+)')],
    respond=template({'id': '{{params.id}}', 'name': 'User {{params.id}}'})
)

not_post_rule = MockRule(
    name='not-post',
    match=[path('/api/not-post'), not_(method('post'))],
    respond=lambda req, ctx: MockResponse(body={'not': 'post'}, status=202)
)

EXAMPLE_RULES = [
    with_url_rule,
    merchant_rule,
    user_rule,
    dual_rule,
    not_post_rule,
    or_rule,
]
