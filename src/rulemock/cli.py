#!/usr/bin/env python3
"""
RuleMock CLI

Command-line interface for the RuleMock mock/proxy server.

Commands:
    serve       - Start the mock server
    rules       - List rules in evaluation order
    match       - Evaluate rules against a synthetic request

Examples:
    # Serve the bundled example rules, proxying the rest of /api
    rulemock serve --proxy-target https://staging.example.com

    # Serve your own rules
    rulemock serve --rules myproject.mocks:RULES --port 3535

    # Check which rule answers a request
    rulemock match --rules myproject.mocks:RULES --method GET --path /api/users/42
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import List, Optional

from .common import import_object
from .mock import Dispatcher, MockConfig, MockRequest, MockRule, MockServer
from .mock.example_rules import EXAMPLE_RULES
from .mock.generator import MockResponse


def load_rules(reference: Optional[str]) -> List[MockRule]:
    """
    Load rules from a ``module:attribute`` reference.

    Args:
        reference: Rule list reference, or None for the bundled examples

    Returns:
        List of MockRule

    Raises:
        TypeError: If the referenced object is not a sequence of MockRule
    """
    if reference is None:
        return list(EXAMPLE_RULES)

    rules = import_object(reference)
    if callable(rules) and not isinstance(rules, (list, tuple)):
        rules = rules()

    if not isinstance(rules, (list, tuple)):
        raise TypeError(f"{reference} must be a list of MockRule, got {type(rules).__name__}")

    for index, rule in enumerate(rules):
        if not isinstance(rule, MockRule):
            raise TypeError(f"{reference}[{index}] is {type(rule).__name__}, expected MockRule")

    return list(rules)


def build_config(args) -> MockConfig:
    """Build server config from an optional YAML file plus CLI overrides."""
    config = MockConfig.from_yaml(args.config) if args.config else MockConfig()
    return config.with_overrides(
        host=args.host,
        port=args.port,
        proxy_target=args.proxy_target,
        proxy_prefix=args.proxy_prefix,
        log_level=args.log_level,
        verbose_mode=True if args.verbose else None,
        admin_enabled=False if args.no_admin else None
    )


def cmd_serve(args) -> int:
    """
    Start the mock server.

    Args:
        args: Parsed command-line arguments
    """
    try:
        rules = load_rules(args.rules)
        config = build_config(args)
        server = MockServer(rules, config=config)
    except Exception as e:
        print(f"❌ Failed to load rules or config: {e}")
        return 1

    print(f"🚀 RuleMock server")
    print(f"   Rules: {args.rules or 'bundled examples'} ({len(rules)})")
    print(f"   Listening: http://{config.host}:{config.port}")
    if config.proxy_target:
        print(f"   Passthrough: {config.proxy_prefix} -> {config.proxy_target}")
    print()

    try:
        server.start()
    except KeyboardInterrupt:
        print("\n\n👋 Mock server stopped")
    return 0


def cmd_rules(args) -> int:
    """
    List rules in the order they are evaluated.

    Args:
        args: Parsed command-line arguments
    """
    try:
        rules = load_rules(args.rules)
    except Exception as e:
        print(f"❌ Failed to load rules: {e}")
        return 1

    print(f"📋 {len(rules)} rules (first match wins):\n")
    for index, rule in enumerate(rules):
        description = rule.describe(index)
        print(f"  {index}. {description['name']}")
        print(f"     {_format_structure(description['match'])}")
    return 0


def _format_structure(node) -> str:
    children = node.get('children')
    if not children:
        return node['name']
    return f"{node['name']}({', '.join(_format_structure(c) for c in children)})"


def cmd_match(args) -> int:
    """
    Evaluate rules against a synthetic request and show the diagnostics.

    Exit code is 0 when a rule matched, 1 otherwise.

    Args:
        args: Parsed command-line arguments
    """
    try:
        rules = load_rules(args.rules)
    except Exception as e:
        print(f"❌ Failed to load rules: {e}")
        return 1

    headers = {}
    for pair in args.header or []:
        if ':' not in pair:
            print(f"❌ Invalid header '{pair}', expected Name:Value")
            return 1
        key, value = pair.split(':', 1)
        headers[key.strip()] = value.strip()

    body = None
    if args.body is not None:
        try:
            body = json.loads(args.body)
        except json.JSONDecodeError:
            body = args.body

    mock_request = MockRequest.from_url(args.method, args.path, headers=headers, body=body)
    dispatcher = Dispatcher(rules, passthrough=lambda req: None)
    outcome = asyncio.run(dispatcher.dispatch(mock_request))

    print(f"🔍 {mock_request.method} {mock_request.path}\n")
    for index, result in enumerate(outcome.results):
        print(f"[{rules[index].label(index)}]")
        print(result.matcher.format_tree(indent=1))
        print()

    if not outcome.matched:
        print("✗ No rule matched: request would pass through")
        return 1

    response = outcome.response
    if isinstance(response, MockResponse):
        response = response.to_dict()
    print(f"✓ Matched {outcome.rule.label(outcome.rule_index)}")
    print(json.dumps(response, indent=2, default=str))
    return 0


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog='rulemock',
        description='RuleMock - rule-based HTTP mock server with passthrough proxy',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Serve bundled example rules
  %(prog)s serve

  # Serve your rules and proxy unmatched /api requests
  %(prog)s serve --rules myproject.mocks:RULES --proxy-target https://staging.example.com

  # Show which rule answers a request
  %(prog)s match --method POST --path /api/merchant/7 --header accept:text/xml --body '{"status": "open"}'
        """
    )

    subparsers = parser.add_subparsers(dest='command', help='Command to run')

    # --- SERVE command ---
    serve_parser = subparsers.add_parser('serve', help='Start mock HTTP server')
    serve_parser.add_argument('-r', '--rules', help='Rule list as module:attribute (default: bundled examples)')
    serve_parser.add_argument('-c', '--config', help='YAML config file')
    serve_parser.add_argument('--host', help='Host to bind (default: 127.0.0.1)')
    serve_parser.add_argument('-p', '--port', type=int, help='Port to bind (default: 3535)')
    serve_parser.add_argument('--proxy-target', help='Upstream base URL for unmatched requests')
    serve_parser.add_argument('--proxy-prefix', help='Only proxy unmatched paths under this prefix (default: /api)')
    serve_parser.add_argument('--log-level', choices=['debug', 'info', 'warning', 'error'],
                              help='Logging level (default: info)')
    serve_parser.add_argument('--no-admin', action='store_true', help='Disable admin API')
    serve_parser.add_argument('--verbose', action='store_true', help='Log matcher trees for every request')

    # --- RULES command ---
    rules_parser = subparsers.add_parser('rules', help='List rules in evaluation order')
    rules_parser.add_argument('-r', '--rules', help='Rule list as module:attribute (default: bundled examples)')

    # --- MATCH command ---
    match_parser = subparsers.add_parser('match', help='Evaluate rules against a synthetic request')
    match_parser.add_argument('-r', '--rules', help='Rule list as module:attribute (default: bundled examples)')
    match_parser.add_argument('-m', '--method', default='GET', help='HTTP method (default: GET)')
    match_parser.add_argument('--path', required=True, help='Request path, may include a query string')
    match_parser.add_argument('-H', '--header', action='append', help='Header as Name:Value (repeatable)')
    match_parser.add_argument('-b', '--body', help='Request body (parsed as JSON when possible)')

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s %(levelname)s %(name)s: %(message)s'
    )

    # Dispatch to command handler
    if args.command == 'serve':
        return cmd_serve(args)
    elif args.command == 'rules':
        return cmd_rules(args)
    elif args.command == 'match':
        return cmd_match(args)
    else:
        parser.print_help()
        return 1


def run():
    """Console script entry point."""
    sys.exit(main())


if __name__ == '__main__':
    run()
