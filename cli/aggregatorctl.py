#!/usr/bin/env python3
"""
Aggregator Control CLI (aggregatorctl)

Aggregates a generation proof and a social proof into one session-bound proof.

Commands:
    execute <input-file>    Dry run of the aggregation program (no proof)
    prove <input-file>      Generate a proof locally or on a prover network
        --network local|reserved|mainnet   (default: local)
        --proof core|compressed|groth16|plonk   (default: compressed)

The JSON response is the only thing written to stdout. Diagnostics and a
single ASCII PASS/FAIL line go to stderr. Exit code is 0 on success, 1 on any
parse, validation, configuration or backend error.
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

from aggregation.errors import AggregationError, ConfigError, MalformedInput
from aggregation.types import BackendTarget, ExecuteOrProve, ProofEncoding
from backend.config import AggregatorConfig, load_config
from backend.orchestrator.pipeline import AggregationPipeline

logger = logging.getLogger("aggregatorctl")


class AggregatorCtl:
    """Aggregator control interface."""

    def __init__(self, config: AggregatorConfig, pipeline: Optional[AggregationPipeline] = None):
        self.config = config
        self._pipeline = pipeline

    @property
    def pipeline(self) -> AggregationPipeline:
        if self._pipeline is None:
            self._pipeline = AggregationPipeline.from_config(self.config)
        return self._pipeline

    def execute(self, input_file: str) -> Dict[str, Any]:
        """
        Run the aggregation program without proving.

        The response carries a placeholder proof and a zero vk hash; only
        ``public_values`` and ``metadata`` are meaningful.
        """
        raw = read_input(input_file)
        response = self.pipeline.run(raw, ExecuteOrProve.EXECUTE)
        return response.to_json_dict()

    def prove(self, input_file: str, network: str = "local", proof: str = "compressed") -> Dict[str, Any]:
        """
        Generate an aggregated proof.

        Args:
            input_file: Path to the aggregation request JSON
            network: Backend target (local, reserved, mainnet)
            proof: Proof encoding (core, compressed, groth16, plonk)

        Returns:
            Response contract as a JSON-ready dict
        """
        target = BackendTarget.from_name(network)
        encoding = ProofEncoding.from_name(proof)
        raw = read_input(input_file)
        response = self.pipeline.run(raw, ExecuteOrProve.PROVE, target, encoding)
        return response.to_json_dict()

    def close(self) -> None:
        if self._pipeline is not None:
            self._pipeline.close()


def read_input(path: str) -> bytes:
    try:
        return Path(path).read_bytes()
    except OSError as exc:
        raise MalformedInput(str(path), f"cannot read input file: {exc}") from exc


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="aggregatorctl",
        description="Aggregate generation + social proofs into one session-bound proof",
    )
    parser.add_argument("--config", help="YAML config file (overrides AGGREGATOR_* env)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    subparsers = parser.add_subparsers(dest="command", required=True)

    execute_parser = subparsers.add_parser("execute", help="Run the program locally without a proof")
    execute_parser.add_argument("input", metavar="JSON", help="Aggregation request file")

    prove_parser = subparsers.add_parser("prove", help="Generate a proof locally or on a prover network")
    prove_parser.add_argument("input", metavar="JSON", help="Aggregation request file")
    prove_parser.add_argument("--network", choices=BackendTarget.choices(), default="local")
    prove_parser.add_argument("--proof", choices=ProofEncoding.choices(), default="compressed")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv()
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    ctl = None
    try:
        ctl = AggregatorCtl(load_config(args.config))
        if args.command == "execute":
            result = ctl.execute(args.input)
        else:
            result = ctl.prove(args.input, network=args.network, proof=args.proof)
    except ConfigError as exc:
        print(f"[FAIL] Configuration error code={exc.code}: {exc.message}", file=sys.stderr)
        return 1
    except AggregationError as exc:
        print(f"[FAIL] Aggregation {args.command} code={exc.code}: {exc.message}", file=sys.stderr)
        return 1
    finally:
        if ctl is not None:
            ctl.close()

    print(json.dumps(result, indent=2))
    metadata = result["metadata"]
    print(
        f"[PASS] Aggregation {args.command} generation_id={metadata['generation_id']} "
        f"social_level={metadata['social_level']} vk_hash={result['vk_hash'][:18]}",
        file=sys.stderr,
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
