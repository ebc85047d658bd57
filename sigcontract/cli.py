#!/usr/bin/env python3
"""
CLI entrypoint for sigcontract.

Usage:
    sigcontract build <trace.jsonl> [--json] [--no-compress]
    sigcontract trace [--output trace.jsonl] <script.py> [script args...]
    sigcontract init [root]

Returns:
    0: contracts built
    3: Error (file not found, bad config, traced script raised, etc.)
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .config import SigContractConfig
from .contracts.registry import ContractRegistry
from .frontend.loader import dump_signatures, load_signatures
from .frontend.tracer import SignatureTracer, pattern_filter, trace_script

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_ERROR = 3


# ── Shared arguments ────────────────────────────────────────────────────────

def _add_report_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--verbose", action="store_true", help="Verbose output")
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print contracts as JSON instead of text",
    )
    parser.add_argument(
        "--no-compress",
        action="store_true",
        help="Skip compression (contracts keep one typed transition per observation)",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Directory holding .sigcontract.yml (default: current directory)",
    )


def _configure_logging(verbose: bool) -> None:
    if verbose:
        logging.basicConfig(level=logging.DEBUG)
    else:
        logging.basicConfig(level=logging.WARNING)


def _load_config(args: argparse.Namespace) -> SigContractConfig:
    root = args.config if args.config is not None else Path(".")
    config = SigContractConfig.load(root)
    if args.json:
        config.output.format = "json"
    if args.no_compress:
        config.build.compress = False
    return config


# ── Reporting ───────────────────────────────────────────────────────────────

def _format_signature(signature) -> str:
    args = ", ".join(
        f"{param.name}: {type_name}"
        for param, type_name in zip(signature.params, signature.arg_types)
    )
    return f"({args}) -> {signature.return_type}"


def _report(registry: ContractRegistry, config: SigContractConfig) -> None:
    if config.build.compress:
        registry.compress_all()

    reported = [
        (method, contract)
        for method, contract in registry.items()
        if contract.counter >= config.build.min_calls
    ]

    if config.output.format == "json":
        document = {
            str(method): {
                "contract": contract.to_dict(),
                "signatures": [s.to_dict() for s in contract.signatures()],
            }
            for method, contract in reported
        }
        print(json.dumps(document, indent=2, sort_keys=True))
        return

    for method, contract in reported:
        print(f"{method}  (calls: {contract.counter}, nodes: {contract.node_count}, "
              f"transitions: {contract.transition_count})")
        for signature in contract.signatures():
            print(f"  {_format_signature(signature)}")
    print(f"\nContracts: {len(reported)}")
    if registry.rejected:
        print(f"Rejected signatures: {registry.rejected}")


# ── Subcommands ─────────────────────────────────────────────────────────────

def _handle_build(args: argparse.Namespace) -> int:
    if not args.trace_file.exists():
        print(f"Error: File not found: {args.trace_file}", file=sys.stderr)
        return EXIT_ERROR
    if not args.trace_file.is_file():
        print(f"Error: Not a file: {args.trace_file}", file=sys.stderr)
        return EXIT_ERROR

    try:
        config = _load_config(args)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_ERROR

    registry = ContractRegistry(filtered_prefixes=config.build.filtered_prefixes)
    added = registry.add_all(load_signatures(args.trace_file))
    logger.info("folded %d signature(s) into %d contract(s)", added, len(registry))
    _report(registry, config)
    return EXIT_OK


def _handle_trace(args: argparse.Namespace) -> int:
    if not args.script.exists():
        print(f"Error: File not found: {args.script}", file=sys.stderr)
        return EXIT_ERROR

    try:
        config = _load_config(args)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_ERROR

    tracer = SignatureTracer(include=pattern_filter(config.trace.include, config.trace.exclude))
    try:
        trace_script(args.script, tracer, argv=args.script_args)
    except Exception as e:
        logger.debug("traced script failed", exc_info=True)
        print(f"Error: {args.script} raised {type(e).__name__}: {e}", file=sys.stderr)
        return EXIT_ERROR

    if args.output is not None:
        written = dump_signatures(tracer.signatures, args.output)
        logger.info("wrote %d signature(s) to %s", written, args.output)

    registry = ContractRegistry(filtered_prefixes=config.build.filtered_prefixes)
    tracer.feed(registry)
    _report(registry, config)
    return EXIT_OK


def _handle_init(args: argparse.Namespace) -> int:
    target = args.root / ".sigcontract.yml"
    if target.exists() and not args.overwrite:
        print(f"Error: {target} already exists (use --overwrite)", file=sys.stderr)
        return EXIT_ERROR
    target.write_text(SigContractConfig().to_yaml())
    print(f"Wrote {target}")
    return EXIT_OK


# ── Main entry point ────────────────────────────────────────────────────────

def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="sigcontract",
        description="sigcontract: compact call-signature contracts from observed calls",
    )
    subparsers = parser.add_subparsers(dest="command")

    build_parser = subparsers.add_parser(
        "build",
        help="Build contracts from a JSON-lines trace file",
    )
    build_parser.add_argument("trace_file", type=Path, help="Trace file (one signature per line)")
    _add_report_arguments(build_parser)

    trace_parser = subparsers.add_parser(
        "trace",
        help="Run a Python script and build contracts from its calls",
    )
    trace_parser.add_argument("script", type=Path, help="Python script to run")
    trace_parser.add_argument("script_args", nargs=argparse.REMAINDER,
                              help="Arguments passed to the script")
    trace_parser.add_argument(
        "--output",
        type=Path,
        default=None,
        help="Also write the recorded signatures as JSON lines",
    )
    _add_report_arguments(trace_parser)

    init_parser = subparsers.add_parser(
        "init",
        help="Write a default .sigcontract.yml",
    )
    init_parser.add_argument(
        "root", type=Path, nargs="?", default=Path("."),
        help="Directory to write the config into (default: current directory)",
    )
    init_parser.add_argument(
        "--overwrite", action="store_true",
        help="Overwrite an existing config file",
    )

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return EXIT_OK

    _configure_logging(getattr(args, "verbose", False))

    if args.command == "build":
        return _handle_build(args)
    elif args.command == "trace":
        return _handle_trace(args)
    elif args.command == "init":
        return _handle_init(args)
    parser.print_help()
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
