#!/usr/bin/env python3
"""
CODEREVIEW — Automated Validation Suite
=======================================

Static and offline checks over the source tree: syntax, imports, version
consistency, secret scan, declared dependencies, layering, error
sanitization and secret masking.

Run:
  python tests/test_codereview.py               # All checks, printed report
  python -m pytest tests/test_codereview.py -v  # Via pytest
"""

import ast
import importlib
import re
import sys
import time
from datetime import datetime
from pathlib import Path
from typing import Dict, List

# ── Setup project root ──────────────────────────────────────────────────
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

# All Python source files to validate
PYTHON_FILES = [
    "run.py",
    "position_reader.py",
    "perp_reader.py",
    "valuation.py",
    "lp_reader/__init__.py",
    "lp_reader/central_config.py",
    "lp_reader/coercion.py",
    "lp_reader/commands.py",
    "lp_reader/dlmm_sdk.py",
    "lp_reader/errors.py",
    "lp_reader/hyperliquid_client.py",
    "lp_reader/log_config.py",
    "lp_reader/memo.py",
    "lp_reader/meteora_client.py",
    "lp_reader/rpc_helpers.py",
    "lp_reader/schema_aliases.py",
    "lp_reader/server.py",
    "lp_reader/token_registry.py",
]

# Importable module names
MODULES = [
    "lp_reader.central_config",
    "lp_reader.coercion",
    "lp_reader.errors",
    "lp_reader.schema_aliases",
    "lp_reader.token_registry",
    "lp_reader.rpc_helpers",
    "lp_reader.memo",
    "lp_reader.dlmm_sdk",
    "lp_reader.meteora_client",
    "lp_reader.hyperliquid_client",
    "lp_reader.log_config",
    "lp_reader.commands",
    "lp_reader.server",
    "valuation",
    "position_reader",
    "perp_reader",
    "run",
]

# Low-level modules that must not reach up into the root-level readers
LOW_LEVEL = [
    "central_config.py",
    "coercion.py",
    "errors.py",
    "schema_aliases.py",
    "token_registry.py",
    "rpc_helpers.py",
    "memo.py",
    "dlmm_sdk.py",
    "meteora_client.py",
    "hyperliquid_client.py",
    "log_config.py",
]

# Sensitive patterns to scan for
SENSITIVE_PATTERNS = [
    r"(?i)private.?key\s*=\s*['\"][1-9A-HJ-NP-Za-km-z]{40,}",
    r"(?i)secret\s*=\s*['\"]",
    r"(?i)password\s*=\s*['\"](?!.*example)",
    r"(?i)api.?key\s*=\s*['\"][a-zA-Z0-9-]{20,}",
    r"(?i)api-key=[a-f0-9-]{30,}",
    r"(?i)bearer\s+[a-zA-Z0-9._-]{20,}",
    r"AKIA[0-9A-Z]{16}",  # AWS access key
]

REQUIRED_DEPENDENCIES = ["httpx", "fastapi", "uvicorn", "python-dotenv"]


# ═══════════════════════════════════════════════════════════════════════
# TEST RESULTS COLLECTOR
# ═══════════════════════════════════════════════════════════════════════


class CodeReviewResults:
    """Collects and formats test results for the codereview report."""

    def __init__(self):
        self.results: List[Dict] = []
        self.start_time = time.time()

    def add(
        self,
        test_id: str,
        name: str,
        passed: bool,
        detail: str = "",
        severity: str = "PASS",
    ):
        self.results.append(
            {
                "id": test_id,
                "name": name,
                "passed": passed,
                "detail": detail,
                "severity": severity if not passed else "PASS",
            }
        )

    def summary(self) -> str:
        elapsed = time.time() - self.start_time
        total = len(self.results)
        passed = sum(1 for r in self.results if r["passed"])
        failed = total - passed

        lines = []
        lines.append("")
        lines.append("═" * 70)
        lines.append("  CODEREVIEW — Automated Validation Report")
        lines.append(
            f"  {datetime.now().strftime('%Y-%m-%d %H:%M:%S')} | {elapsed:.1f}s"
        )
        lines.append("═" * 70)
        lines.append("")

        severity_icons = {
            "PASS": "✅",
            "LOW": "🟢",
            "MEDIUM": "🟡",
            "HIGH": "🟠",
            "CRITICAL": "🔴",
        }

        for r in self.results:
            icon = severity_icons.get(r["severity"], "❓")
            status = "PASS" if r["passed"] else f"FAIL [{r['severity']}]"
            lines.append(f"  {icon} {r['id']:5s} {r['name']:<45s} {status}")
            if r["detail"] and not r["passed"]:
                for d in r["detail"].split("\n"):
                    lines.append(f"         {d}")

        lines.append("")
        lines.append("─" * 70)
        pct = (passed / total * 100) if total > 0 else 0
        lines.append(f"  Results: {passed}/{total} passed ({pct:.0f}%)")
        if failed == 0:
            lines.append("  🎉 ALL CHECKS PASSED")
        else:
            lines.append(f"  ⚠️  {failed} check(s) failed — review above")
        lines.append("─" * 70)

        return "\n".join(lines)


# ═══════════════════════════════════════════════════════════════════════
# T06: Syntax validation (ast.parse)
# ═══════════════════════════════════════════════════════════════════════


def _t06_syntax(results: CodeReviewResults):
    """T06: All Python files parse without syntax errors."""
    errors = []
    for f in PYTHON_FILES:
        fpath = PROJECT_ROOT / f
        if not fpath.exists():
            errors.append(f"{f}: FILE NOT FOUND")
            continue
        try:
            ast.parse(fpath.read_text())
        except SyntaxError as e:
            errors.append(f"{f}: line {e.lineno}: {e.msg}")

    ok = len(errors) == 0
    detail = "\n".join(errors) if errors else f"{len(PYTHON_FILES)} files OK"
    results.add("T06", "Syntax validation (ast.parse)", ok, detail, "CRITICAL")


# ═══════════════════════════════════════════════════════════════════════
# T07: Import validation
# ═══════════════════════════════════════════════════════════════════════


def _t07_imports(results: CodeReviewResults):
    """T07: All project modules import without error."""
    errors = []
    for mod in MODULES:
        try:
            importlib.import_module(mod)
        except Exception as e:
            errors.append(f"{mod}: {e}")

    ok = len(errors) == 0
    detail = "\n".join(errors) if errors else f"{len(MODULES)} modules OK"
    results.add("T07", "Import validation", ok, detail, "CRITICAL")


# ═══════════════════════════════════════════════════════════════════════
# T08: Version consistency
# ═══════════════════════════════════════════════════════════════════════


def _t08_version(results: CodeReviewResults):
    """T08: Version in pyproject.toml matches central_config.py."""
    try:
        from lp_reader.central_config import PROJECT_VERSION

        toml_path = PROJECT_ROOT / "pyproject.toml"
        toml_text = toml_path.read_text()
        match = re.search(r'version\s*=\s*"([^"]+)"', toml_text)
        toml_version = match.group(1) if match else "NOT_FOUND"

        ok = PROJECT_VERSION == toml_version
        detail = f"central_config={PROJECT_VERSION}, pyproject.toml={toml_version}"
        severity = "HIGH" if not ok else "PASS"
        results.add("T08", "Version consistency", ok, detail, severity)
    except Exception as e:
        results.add("T08", "Version consistency", False, str(e), "HIGH")


# ═══════════════════════════════════════════════════════════════════════
# T09: Sensitive data scan
# ═══════════════════════════════════════════════════════════════════════


def _t09_secrets(results: CodeReviewResults):
    """T09: No hardcoded secrets/keys in source code."""
    findings = []
    for f in PYTHON_FILES:
        fpath = PROJECT_ROOT / f
        if not fpath.exists():
            continue
        content = fpath.read_text()
        for i, line in enumerate(content.split("\n"), 1):
            for pattern in SENSITIVE_PATTERNS:
                if re.search(pattern, line):
                    findings.append(f"{f}:{i} — matches: {pattern}")

    env_file = PROJECT_ROOT / ".env.example"
    if env_file.exists():
        for i, line in enumerate(env_file.read_text().split("\n"), 1):
            if line.startswith("HELIUS_API_KEY=") and line.strip() != "HELIUS_API_KEY=":
                findings.append(f".env.example:{i} — HELIUS_API_KEY has a value")

    ok = len(findings) == 0
    detail = "\n".join(findings[:5]) if findings else "No secrets found"
    results.add("T09", "Sensitive data scan", ok, detail, "CRITICAL")


# ═══════════════════════════════════════════════════════════════════════
# T21: Declared dependencies
# ═══════════════════════════════════════════════════════════════════════


def _t21_requirements(results: CodeReviewResults):
    """T21: pyproject.toml declares every third-party runtime dependency."""
    findings = []
    toml_text = (PROJECT_ROOT / "pyproject.toml").read_text()
    deps_block = re.search(r"dependencies\s*=\s*\[(.*?)\]", toml_text, re.S)
    declared = deps_block.group(1) if deps_block else ""
    for dep in REQUIRED_DEPENDENCIES:
        if not re.search(rf'"{re.escape(dep)}\b', declared):
            findings.append(f"pyproject.toml: missing dependency {dep}")

    test_block = re.search(r"test\s*=\s*\[(.*?)\]", toml_text, re.S)
    if not test_block or "pytest" not in test_block.group(1):
        findings.append("pyproject.toml: pytest missing from the test extra")

    ok = len(findings) == 0
    detail = "\n".join(findings) if findings else f"{len(REQUIRED_DEPENDENCIES)} dependencies declared"
    results.add("T21", "Dependency declaration", ok, detail, "HIGH")


# ═══════════════════════════════════════════════════════════════════════
# T22: Modularity
# ═══════════════════════════════════════════════════════════════════════


def _t22_modularity(results: CodeReviewResults):
    """T22: Modules have docstrings; low-level modules never import the readers."""
    findings = []

    for mod_name in MODULES:
        try:
            mod = importlib.import_module(mod_name)
            if not getattr(mod, "__doc__", None):
                findings.append(f"{mod_name}: missing module docstring")
        except ImportError as e:
            findings.append(f"{mod_name}: import error — {e}")

    # Root imports lp_reader, not the other way (server/commands excepted)
    for f in LOW_LEVEL:
        content = (PROJECT_ROOT / "lp_reader" / f).read_text()
        for bad_import in [
            "import position_reader",
            "from position_reader",
            "from perp_reader",
            "from valuation",
            "import run",
        ]:
            if bad_import in content:
                findings.append(
                    f"lp_reader/{f}: improper import '{bad_import}' (breaks modularity)"
                )

    init_path = PROJECT_ROOT / "lp_reader" / "__init__.py"
    if "__version__" not in init_path.read_text():
        findings.append("lp_reader/__init__.py: missing version export")

    ok = len(findings) == 0
    detail = "\n".join(findings) if findings else f"{len(MODULES)} modules OK, proper isolation"
    results.add("T22", "Modularity check", ok, detail, "MEDIUM")


# ═══════════════════════════════════════════════════════════════════════
# T33: Error sanitization (CWE-209)
# ═══════════════════════════════════════════════════════════════════════


def _t33_error_sanitization(results: CodeReviewResults):
    """T33: Error messages do not leak raw exceptions or stack traces."""
    findings = []
    for f in PYTHON_FILES:
        content = (PROJECT_ROOT / f).read_text()
        for i, line in enumerate(content.split("\n"), 1):
            stripped = line.strip()
            if stripped.startswith("#"):
                continue
            if re.search(r'(print|return)\s*\(.*\{(e|exc)\}', stripped):
                findings.append(f"{f}:{i}: raw exception in output")
            if "traceback.format_exc" in stripped:
                findings.append(f"{f}:{i}: traceback in output")

    ok = len(findings) == 0
    detail = "\n".join(findings[:5]) if findings else "No raw exceptions in user-facing output"
    results.add("T33", "Error sanitization (CWE-209)", ok, detail, "MEDIUM")


# ═══════════════════════════════════════════════════════════════════════
# T36: RPC URL masking (CWE-200)
# ═══════════════════════════════════════════════════════════════════════


def _t36_rpc_url_masking(results: CodeReviewResults):
    """T36: RPC URLs with API keys are masked before logs and output."""
    try:
        from lp_reader.rpc_helpers import mask_rpc_url

        tests = [
            ("https://api.mainnet-beta.solana.com", "https://api.mainnet-beta.solana.com"),
            ("https://mainnet.helius-rpc.com/?api-key=0a1b2c3d", "https://mainnet.helius-rpc.com/?api-key=***"),
            ("https://solana-mainnet.g.alchemy.com/v2/abc123def456ghi789", "https://solana-mainnet.g.alchemy.com/v2/***"),
            ("", "N/A"),
        ]
        findings = []
        for input_url, expected in tests:
            result = mask_rpc_url(input_url)
            if result != expected:
                findings.append(f"mask_rpc_url({input_url!r}) = {result!r}, expected {expected!r}")

        ok = len(findings) == 0
        detail = "\n".join(findings) if findings else "RPC URL masking working"
        results.add("T36", "RPC URL masking (CWE-200)", ok, detail, "MEDIUM")
    except Exception as e:
        results.add("T36", "RPC URL masking (CWE-200)", False, str(e)[:200], "MEDIUM")


# ═══════════════════════════════════════════════════════════════════════
# T37: Wallet address masking in CLI output
# ═══════════════════════════════════════════════════════════════════════


def _t37_wallet_masking(results: CodeReviewResults):
    """T37: CLI output shows only the ends of a wallet address."""
    try:
        from lp_reader.commands import _mask_wallet

        wallet = "0x1234567890abcdef1234567890abcdef12345678"
        masked = _mask_wallet(wallet)
        findings = []
        if wallet in masked:
            findings.append("full wallet address printed")
        if not (masked.startswith("0x1234") and masked.endswith("5678")):
            findings.append(f"unexpected mask: {masked!r}")

        ok = len(findings) == 0
        detail = "\n".join(findings) if findings else "Wallet masking working"
        results.add("T37", "Wallet masking", ok, detail, "LOW")
    except Exception as e:
        results.add("T37", "Wallet masking", False, str(e)[:200], "LOW")


# ═══════════════════════════════════════════════════════════════════════
# RUNNER
# ═══════════════════════════════════════════════════════════════════════


def run_all():
    """Execute all codereview checks and print summary."""
    results = CodeReviewResults()

    print("\n🔍 CODEREVIEW — Starting automated validation...")
    print(f"   Date: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    print(f"   Root: {PROJECT_ROOT}")
    print()

    checks = [
        ("T06", "Syntax validation", _t06_syntax),
        ("T07", "Import validation", _t07_imports),
        ("T08", "Version consistency", _t08_version),
        ("T09", "Sensitive data scan", _t09_secrets),
        ("T21", "Dependency declaration", _t21_requirements),
        ("T22", "Modularity", _t22_modularity),
        ("T33", "Error sanitization", _t33_error_sanitization),
        ("T36", "RPC URL masking", _t36_rpc_url_masking),
        ("T37", "Wallet masking", _t37_wallet_masking),
    ]
    for test_id, name, check in checks:
        print(f"  ⏳ {test_id}: {name}...")
        check(results)

    print(results.summary())

    critical_fails = sum(
        1 for r in results.results if not r["passed"] and r["severity"] == "CRITICAL"
    )
    return 1 if critical_fails > 0 else 0


# ── Pytest integration ──────────────────────────────────────────────────
# Each check can also be run individually via pytest

import pytest


@pytest.fixture(scope="module")
def cr():
    return CodeReviewResults()

def test_cr_t06_syntax(cr): _t06_syntax(cr); assert all(r["passed"] for r in cr.results if r["id"] == "T06")
def test_cr_t07_imports(cr): _t07_imports(cr); assert all(r["passed"] for r in cr.results if r["id"] == "T07")
def test_cr_t08_version(cr): _t08_version(cr); assert all(r["passed"] for r in cr.results if r["id"] == "T08")
def test_cr_t09_secrets(cr): _t09_secrets(cr); assert all(r["passed"] for r in cr.results if r["id"] == "T09")
def test_cr_t21_requirements(cr): _t21_requirements(cr); assert all(r["passed"] for r in cr.results if r["id"] == "T21")
def test_cr_t22_modularity(cr): _t22_modularity(cr); assert all(r["passed"] for r in cr.results if r["id"] == "T22")
def test_cr_t33_error_sanitize(cr): _t33_error_sanitization(cr); assert all(r["passed"] for r in cr.results if r["id"] == "T33")
def test_cr_t36_rpc_masking(cr): _t36_rpc_url_masking(cr); assert all(r["passed"] for r in cr.results if r["id"] == "T36")
def test_cr_t37_wallet_masking(cr): _t37_wallet_masking(cr); assert all(r["passed"] for r in cr.results if r["id"] == "T37")


# ── CLI entry point ─────────────────────────────────────────────────────

if __name__ == "__main__":
    sys.exit(run_all())
