"""Driving terraform scenarios and preparing copies of their directories."""

from __future__ import annotations

import json
import os
import shutil
import stat
import subprocess
from pathlib import Path
from typing import Any, Callable, Mapping, Sequence

VARS_FILE_NAME = "terraform.tfvars.json"
_COPIED_SUFFIXES = (".tf", ".hcl", ".json", ".tfvars")

TerraformRunner = Callable[[Sequence[str], Path, bool, "float | None"], str]
"""Runs a terraform command line in a directory; returns stdout when capturing."""


class TerraformError(RuntimeError):
    """A terraform command or workspace preparation failed."""


def _run_terraform(argv: Sequence[str], cwd: Path, capture: bool, timeout: float | None) -> str:
    completed = subprocess.run(
        list(argv), cwd=cwd, check=True, timeout=timeout, capture_output=capture, text=True
    )
    return completed.stdout if capture else ""


class Terraform:
    """Runs terraform in one working directory."""

    def __init__(
        self,
        work_dir: str | os.PathLike[str],
        runner: TerraformRunner | None = None,
        timeout: float | None = None,
    ) -> None:
        self.work_dir = Path(work_dir)
        self.runner = runner or _run_terraform
        self.timeout = timeout

    def _run(self, args: Sequence[str], failure: str, capture: bool = False) -> str:
        try:
            return self.runner(["terraform", *args], self.work_dir, capture, self.timeout)
        except (subprocess.CalledProcessError, subprocess.TimeoutExpired, OSError) as exc:
            raise TerraformError(f"{failure}: {exc}") from exc

    def _write_vars_file(self, variables: Mapping[str, Any]) -> Path:
        try:
            data = json.dumps(dict(variables), indent=2, sort_keys=True)
            var_file = self.work_dir / VARS_FILE_NAME
            var_file.write_text(data)
        except (OSError, TypeError, ValueError) as exc:
            raise TerraformError(f"failed to write vars file: {exc}") from exc
        return var_file

    def init(self) -> None:
        self._run(["init"], "terraform init failed")

    def apply(self, variables: Mapping[str, Any]) -> dict[str, Any]:
        """Apply with the given variables and return the resulting outputs."""
        var_file = self._write_vars_file(variables)
        try:
            self._run(["apply", "-auto-approve", f"-var-file={var_file}"], "terraform apply failed")
            return self.output()
        finally:
            var_file.unlink(missing_ok=True)

    def destroy(self, variables: Mapping[str, Any]) -> None:
        var_file = self._write_vars_file(variables)
        try:
            self._run(["destroy", "-auto-approve", f"-var-file={var_file}"], "terraform destroy failed")
        finally:
            var_file.unlink(missing_ok=True)

    def output(self) -> dict[str, Any]:
        """Return each output's value, keyed by output name."""
        raw = self._run(["output", "-json"], "terraform output failed", capture=True)
        try:
            outputs = json.loads(raw)
        except (TypeError, ValueError) as exc:
            raise TerraformError(f"failed to parse terraform output: {exc}") from exc
        if not isinstance(outputs, dict):
            raise TerraformError("failed to parse terraform output: expected a JSON object")
        return {
            key: value["value"]
            for key, value in outputs.items()
            if isinstance(value, dict) and "value" in value
        }


def _skipped(path: str) -> bool:
    return ".terraform" in path and not path.endswith(".terraform.lock.hcl")


def _copy_dir(src: Path, dst: Path) -> None:
    if _skipped(str(src)):
        return
    for root, dirnames, filenames in os.walk(src):
        root_path = Path(root)
        target = dst / root_path.relative_to(src)
        target.mkdir(mode=stat.S_IMODE(root_path.stat().st_mode), parents=True, exist_ok=True)
        dirnames[:] = [name for name in dirnames if not _skipped(str(root_path / name))]
        for name in filenames:
            source = root_path / name
            if _skipped(str(source)) or not name.endswith(_COPIED_SUFFIXES):
                continue
            shutil.copyfile(source, target / name)


def create_test_workspace(scenario_path: str | os.PathLike[str], target_dir: str | os.PathLike[str]) -> None:
    """Copy the terraform tree two levels above a scenario into target_dir.

    Copying the whole tree keeps relative module references working.
    """
    scenario = Path(scenario_path).resolve()
    if not scenario.exists():
        raise TerraformError(f"scenario path does not exist: {scenario}")
    terraform_root = scenario.parent.parent
    if not terraform_root.exists():
        raise TerraformError(f"terraform root does not exist: {terraform_root}")
    target = Path(target_dir)
    try:
        _copy_dir(terraform_root, target)
    except OSError as exc:
        raise TerraformError(
            f"failed to copy terraform files from {terraform_root} to {target}: {exc}"
        ) from exc