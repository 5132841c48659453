from __future__ import annotations

import subprocess
import sys
from pathlib import Path


SCRIPT_PATH = Path(__file__).resolve().parents[2] / "scripts" / "bootstrap_admin.py"


def _run_script(*args: str, check: bool = True) -> subprocess.CompletedProcess[str]:
    return subprocess.run(
        [sys.executable, str(SCRIPT_PATH), *args],
        check=check,
        capture_output=True,
        text=True,
    )


def test_bootstrap_script_emits_admin_email_insert() -> None:
    output = _run_script("--email", " Admin@Example.org ").stdout

    assert "insert into admin_emails (email)" in output
    assert "values ('admin@example.org')" in output
    assert "on conflict (email) do nothing;" in output
    assert "app_settings" not in output


def test_bootstrap_script_superadmin_also_sets_app_settings() -> None:
    output = _run_script("--email", "root@example.org", "--role", "superadmin").stdout

    assert "values ('root@example.org')" in output
    assert "insert into app_settings (id, superadmin_email)" in output
    assert "values (true, 'root@example.org')" in output


def test_bootstrap_script_quotes_single_quotes() -> None:
    output = _run_script("--email", "o'neil@example.org").stdout

    assert "values ('o''neil@example.org')" in output


def test_bootstrap_script_rejects_non_email() -> None:
    completed = _run_script("--email", "not-an-email", check=False)

    assert completed.returncode != 0
    assert "--email must be an email address" in completed.stderr
