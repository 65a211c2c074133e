#!/usr/bin/env python3
"""secgate command line.

    secgate run [--target IMAGE] [--target-url URL] [--source-dir DIR] ...
    secgate gate --codeql codeql.sarif --snyk snyk.sarif --zap zap-results.xml
    secgate combine-sarif a.sarif b.sarif -o combined.sarif

Exit codes: 0 PASS, 1 FAIL, 2 ERROR.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from secgate.core.config import settings
from secgate.core.containers import build_normalizer_registry, build_orchestrator, build_scan_request
from secgate.core.errors import PolicyInvalid, PolicyUnsatisfiable
from secgate.core.logging import setup_logging
from secgate.domain.models import RunOutcome, ScannerKind
from secgate.domain.schemas import RunConfig
from secgate.services import sarif_service
from secgate.services.gate_service import load_policy
from secgate.services.orchestrator import gate_reports

logger = logging.getLogger(__name__)

_KINDS = [k.value for k in ScannerKind]


def _cmd_run(args: argparse.Namespace) -> int:
    cfg = RunConfig(
        target=args.target,
        target_url=args.target_url,
        source_dir=args.source_dir,
        scanners=args.scanner or None,
        required=args.required,
        policy=args.policy,
        commit=args.commit,
    )
    try:
        request = build_scan_request(cfg)
    except ValueError as e:
        print(f"[run] invalid request: {e}", file=sys.stderr)
        return RunOutcome.ERROR.exit_code

    try:
        result = asyncio.run(build_orchestrator(deploy=not args.no_deploy).run(request))
    except Exception as e:
        # crashes are ERROR (exit 2), not FAIL
        logger.exception("Run aborted")
        print(f"[run] ERROR: {type(e).__name__}: {e}", file=sys.stderr)
        return RunOutcome.ERROR.exit_code

    for o in result.scanners.values():
        status = o.state.value if not o.failure else f"{o.state.value} ({o.failure.value}: {o.error})"
        print(f"[run] {o.kind.value}: {status}, {len(o.findings)} finding(s)")
    if result.report is not None:
        print(f"[run] combined findings={len(result.report.findings)}")
    print(f"[run] {result.outcome.value}: {result.message} (run_id={result.run_id})")
    return result.outcome.exit_code


def _cmd_gate(args: argparse.Namespace) -> int:
    reports: dict[ScannerKind, tuple[str, bytes]] = {}
    for kind in ScannerKind:
        path = getattr(args, kind.value)
        if not path:
            continue
        p = Path(path)
        if not p.is_file():
            print(f"[gate] {kind.value}: {path} not found, skipping")
            continue
        reports[kind] = (p.name, p.read_bytes())

    try:
        policy = load_policy(args.policy)
        result = gate_reports(build_normalizer_registry(), reports, policy)
    except (PolicyInvalid, PolicyUnsatisfiable) as e:
        print(f"[gate] ERROR: {e}")
        return RunOutcome.ERROR.exit_code

    for kind, reason in result.skipped.items():
        print(f"[gate] {kind.value}: skipped ({reason})")
    summary = result.report.summary()
    for name, count in summary["by_scanner"].items():
        print(f"[gate] {name}={count}")
    print(f"[gate] failing={len(result.gate.failing)} (threshold {result.gate.threshold.value})")

    if args.output:
        doc = sarif_service.render(result.report)
        Path(args.output).write_bytes(sarif_service.dumps(doc))

    if not result.gate.passed:
        print("[gate] FAILED")
        return RunOutcome.FAIL.exit_code
    print("[gate] PASSED")
    return RunOutcome.PASS.exit_code


def _cmd_combine(args: argparse.Namespace) -> int:
    docs = []
    for path in args.files:
        try:
            docs.append(json.loads(Path(path).read_text(encoding="utf-8")))
        except (OSError, json.JSONDecodeError) as e:
            print(f"[combine] cannot read {path}: {e}", file=sys.stderr)
            return RunOutcome.ERROR.exit_code

    merged = sarif_service.merge_documents(docs)
    out = Path(args.output)
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_bytes(sarif_service.dumps(merged))
    print(f"[combine] {len(merged['runs'])} run(s) -> {out}")
    return RunOutcome.PASS.exit_code


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="secgate", description="Security scan orchestration and quality gate")
    sub = ap.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="run scanners, gate, and redeploy on pass")
    run.add_argument("--target", default=settings.DEPLOY_IMAGE, help="container image to gate and redeploy")
    run.add_argument("--target-url", help="URL of the running app for ZAP")
    run.add_argument("--source-dir", help="source tree for CodeQL/Snyk")
    run.add_argument("--scanner", action="append", choices=_KINDS, help="scanner to run (repeatable)")
    run.add_argument("--required", action="append", choices=_KINDS, help="scanner whose failure aborts the run")
    run.add_argument("--policy", default="default")
    run.add_argument("--commit")
    run.add_argument("--no-deploy", action="store_true")
    run.set_defaults(func=_cmd_run)

    gate = sub.add_parser("gate", help="gate reports that already exist on disk")
    gate.add_argument("--codeql", help="CodeQL SARIF file")
    gate.add_argument("--snyk", help="Snyk SARIF file")
    gate.add_argument("--zap", help="ZAP XML report")
    gate.add_argument("--policy", default="default")
    gate.add_argument("-o", "--output", help="write the combined SARIF report here")
    gate.set_defaults(func=_cmd_gate)

    comb = sub.add_parser("combine-sarif", help="merge SARIF files into one document")
    comb.add_argument("files", nargs="+")
    comb.add_argument("-o", "--output", required=True)
    comb.set_defaults(func=_cmd_combine)

    return ap


def main(argv: list[str] | None = None) -> int:
    setup_logging()
    args = build_parser().parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
