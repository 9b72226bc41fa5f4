"""Entry point for executing a single conformance probe."""

import argparse
import asyncio
import inspect
import json
import logging
import sys
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from ai_conformance.cluster.backends import load_backend_manifest
from ai_conformance.lifecycle import HarnessConfig, Probe, TestLifecycle
from ai_conformance.models.run import TestRun

STATUS_SYMBOLS = {
    "passed": "✓",
    "failed": "✗",
    "running": "?",
}


def format_output(lifecycle: TestLifecycle) -> dict[str, Any]:
    """Format the outcome of a run for JSON output."""
    checks = [
        {"name": result.name, "passed": result.passed}
        for result in lifecycle.recorder.summarize()
    ]
    return {
        "name": lifecycle.run.name,
        "namespace": lifecycle.run.namespace,
        "status": lifecycle.state.status,
        "exit_code": lifecycle.exit_code,
        "log_file": str(lifecycle.run.log_file),
        "checks": checks,
    }


async def run_probe(
    probe: Probe,
    *,
    name: str,
    description: str,
    namespace: str,
    run_dir: Path,
    backend: str = "kubectl",
    backend_config_json: str = "{}",
    additional_namespaces: Sequence[str] = (),
    crds: Sequence[str] = (),
    config: HarnessConfig | None = None,
) -> int:
    """Run one probe against the cluster and return its exit code."""
    log = logging.getLogger("ai_conformance")

    log.info("Loading cluster backend: %s", backend)
    manifest = load_backend_manifest(backend)

    run = TestRun(
        name=name, description=description, namespace=namespace, run_dir=run_dir
    )

    async with manifest.open_client(backend_config_json) as cluster:
        lifecycle = TestLifecycle(
            run=run, cluster=cluster, config=config or HarnessConfig()
        )
        for extra in additional_namespaces:
            lifecycle.registry.add_namespace(extra)
        for crd in crds:
            lifecycle.registry.add_crd(crd)

        exit_code = await lifecycle.execute(probe)

    status = lifecycle.state.status
    log.info(
        "%s %s: %s (exit code %d)", STATUS_SYMBOLS[status], name, status, exit_code
    )
    print(json.dumps(format_output(lifecycle), indent=2))
    return exit_code


def main_for(
    probe: Probe,
    *,
    name: str,
    description: str,
    namespace: str,
    additional_namespaces: Sequence[str] = (),
    crds: Sequence[str] = (),
    argv: Sequence[str] | None = None,
) -> None:
    """CLI entry point for a probe module's ``__main__`` block."""
    parser = argparse.ArgumentParser(description=f"Run conformance test: {name}")
    parser.add_argument(
        "--backend",
        default="kubectl",
        help="Cluster backend key (default: kubectl)",
    )
    parser.add_argument(
        "--backend-config",
        default="{}",
        help="JSON configuration for the cluster backend",
    )
    parser.add_argument(
        "--harness-config",
        default="{}",
        help="JSON overrides for harness timings",
    )
    parser.add_argument(
        "--run-dir",
        type=Path,
        default=None,
        help="Directory for test_result.log (default: the probe's directory)",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )

    run_dir = args.run_dir or Path(inspect.getfile(probe)).resolve().parent
    config = HarnessConfig.model_validate_json(args.harness_config)

    exit_code = asyncio.run(
        run_probe(
            probe,
            name=name,
            description=description,
            namespace=namespace,
            run_dir=run_dir,
            backend=args.backend,
            backend_config_json=args.backend_config,
            additional_namespaces=additional_namespaces,
            crds=crds,
            config=config,
        )
    )
    sys.exit(exit_code)
