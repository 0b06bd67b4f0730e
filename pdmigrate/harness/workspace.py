"""Locating the pd binary and preparing throwaway terraform workspaces."""

from __future__ import annotations

import os
import secrets
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from ..logs.unified import infof, warnf
from .terraform import Terraform, TerraformError, create_test_workspace

DESTROY_TIMEOUT = 600.0
"""Seconds allowed for tearing down a workspace's resources."""


def pd_binary_path() -> str:
    """Path of the pd binary: ./pd, then ../pd, then ../bin/pd; ./pd if none exist."""
    bin_path = os.path.join("..", "bin", "pd")
    for candidate, reported in (("pd", "./pd"), ("../pd", "../pd"), (bin_path, bin_path)):
        if os.path.exists(candidate):
            return reported
    return "./pd"


@dataclass
class TestWorkspace:
    """A copied terraform scenario and the means to tear it down."""

    __test__ = False

    terraform: Terraform
    workspace_dir: Path
    work_dir: Path
    tf_vars: dict[str, Any] = field(default_factory=dict)

    def __enter__(self) -> TestWorkspace:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.cleanup()

    def cleanup(self) -> None:
        """Destroy the resources and remove the directory, unless PRESERVE_TF_RESOURCES is true.

        The directory is removed even if destroy fails; the destroy error is raised afterwards.
        """
        if os.environ.get("PRESERVE_TF_RESOURCES") == "true":
            infof("PRESERVE_TF_RESOURCES is set to true")
            infof("Terraform state preserved in: %s", self.work_dir)
            infof("To manually destroy resources, run:")
            infof("  cd %s && terraform destroy -var-file=terraform.tfvars.json", self.work_dir)
            return

        destroyer = Terraform(self.work_dir, runner=self.terraform.runner, timeout=DESTROY_TIMEOUT)
        failure: TerraformError | None = None
        try:
            destroyer.destroy(self.tf_vars)
        except TerraformError as exc:
            failure = exc

        try:
            shutil.rmtree(self.workspace_dir)
        except OSError as exc:
            warnf("Warning: failed to clean up workspace directory %s: %v", self.workspace_dir, exc)

        if failure is not None:
            raise TerraformError(f"Failed to destroy test resources: {failure}") from failure


def setup_test_workspace(
    scenario_path: str | os.PathLike[str],
    tf_vars: dict[str, Any],
    test_name: str,
    root: str | os.PathLike[str] | None = None,
) -> TestWorkspace:
    """Copy a scenario into a fresh uniquely named directory under root."""
    base = Path(root) if root is not None else Path("..", "tmp_integration_tests")
    base = base.resolve()

    workspace_name = f"{test_name.replace('/', '_')}-{secrets.token_hex(4)}"
    workspace_dir = base / workspace_name
    workspace_dir.mkdir(mode=0o755, parents=True, exist_ok=True)

    scenario = Path(scenario_path)
    work_dir = workspace_dir / scenario.parent.name / scenario.name

    create_test_workspace(scenario, workspace_dir)

    return TestWorkspace(
        terraform=Terraform(work_dir),
        workspace_dir=workspace_dir,
        work_dir=work_dir,
        tf_vars=dict(tf_vars),
    )