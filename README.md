# pdmigrate

Building blocks for moving Google Cloud persistent disks to a new disk type,
for example from `pd-standard` to `pd-ssd` or from `pd-balanced` to
`hyperdisk-balanced`, by way of snapshots.

The package has three parts: console logging, high-level Compute Engine
clients, and helpers for integration tests that drive `gcloud` and
`terraform`. It has no third-party dependencies.

## `pdmigrate.logs`: console logging

`pdmigrate.logs.unified` holds one process-wide `UnifiedLogger`
(`get_logger()` always returns the same instance). Records carry structured
fields. Once `setup` has been called, two kinds of message go to two places:

* **user** messages, made by `starting`, `success`, `snapshot`, `delete`,
  `create`, `cleanup` and their `...f` variants, are prefixed with
  `[STARTING] `, `[SUCCESS] `, `[SNAPSHOT] `, `[DELETE] `, `[CREATE] ` or
  `[CLEANUP] ` and written to standard output as the bare message;
* **operational** messages (`info`, `warn`, `error`, `debug`, and entries
  made with `with_field` / `with_fields_map`) are written to standard error
  with a level prefix and `key=value` fields.

```python
from pdmigrate.logs import unified

unified.setup(verbose=False, json_logs=False, quiet=False)

unified.starting("Starting disk migration process...")
unified.with_fields_map({"disk": "data-1", "zone": "us-central1-a"}).info("Creating snapshot")
unified.successf("Migrated %d disk(s)", 3)
```

Before `setup` is called, every message goes to standard output as the bare
message, at info level and above.

`setup(verbose, json_logs, quiet)` sets the level: errors only when quiet,
debug when verbose, info otherwise. In verbose text mode the operational
lines also carry a timestamp. With `json_logs` each record is one JSON object
with its fields and `level`, `msg` and `time` keys. Two environment
variables take precedence over the arguments:

* `LOG_MODE`: `quiet`, `verbose` or `debug`;
* `LOG_FORMAT`: `json` or `text`.

`setup_unified_logger(verbose, json_logs, quiet)` is an alternative that
sends everything to standard output through a single `UnifiedFormatter`.

Fields can be built with `Field`, `with_log_type(LogType.USER)`,
`with_emoji(...)` and `with_fields(mapping)`; an entry can carry an
exception with `with_error(exc)`.

The formatters (`CLIFormatter`, `JSONFormatter`, `UnifiedFormatter`), the
routing handler `OutputRouterHandler` and the stream `LogTypeWriter` live in
`pdmigrate.logs.formatters`.

## `pdmigrate.gcp`: Compute Engine clients

The clients do not talk to Google Cloud themselves. Each one wraps a
low-level API object that you supply, described by a protocol in its module
(`DisksApi`, `SnapshotsApi`, `InstancesApi`); resources go in and come out
as plain dicts with the API's field names (`name`, `status`, `zone`,
`users`, `labels`, ...). Every call that starts a long-running operation
waits for it, ten minutes by default (`op_timeout`).

* `pdmigrate.gcp.disks.DiskClient`: `get_disk`, `list_detached_disks`
  (READY disks in the given zone that no instance uses),
  `create_new_disk_from_snapshot`, `update_disk_label` (keeps the other
  labels), `delete_disk`. Provisioned IOPS and throughput are only sent for
  disk types for which `supports_iops_and_throughput` is true
  (`pd-extreme`, `hyperdisk-balanced`, `hyperdisk-extreme`,
  `hyperdisk-ml`).
* `pdmigrate.gcp.snapshots.SnapshotClient`: `create_snapshot` (always
  labelled `managed-by=pd-migrate`, optionally encrypted with a key given
  by `SnapshotKmsParams`), `delete_snapshot`, `list_snapshots_by_label`.
* `pdmigrate.gcp.compute.ComputeClient`: `start_instance`,
  `stop_instance`, `list_instances_in_zone`, `aggregated_list_instances`,
  `get_instance`, `instance_is_running`, `get_instance_disks`,
  `delete_instance`, `attach_disk`, `detach_disk`.
* `pdmigrate.gcp.clients.new_clients(api_factory)` takes a factory with
  `disks()`, `snapshots()`, `zones()`, `regions()` and `instances()`
  methods and returns a `Clients` bundle; if one API cannot be created, the
  ones already made are closed. `Clients.close()` (or using it in a `with`
  block) closes them all.

Each client is also a context manager that closes its API on exit. Failures
are raised as `pdmigrate.gcp.operations.GcpOperationError`, chained to the
underlying exception; `wait_for(operation, timeout)` is the helper that
waits on a single operation.

## `pdmigrate.harness`: integration test helpers

These run the `gcloud` and `terraform` command-line tools, which must be
installed and authenticated.

* `pdmigrate.harness.gcloud.GcloudClient(project_id)` reads instances and
  disks back as `Instance`, `AttachedDisk` and `DiskInfo` records
  (`get_instance`, `get_disk`, `get_regional_disk`, `list_disks`) and can
  `stop_instance` / `start_instance`. Failures raise `GcloudError`.
  `extract_disk_name_from_source` and `extract_zone_from_path` pick names
  out of resource paths.
* `pdmigrate.harness.terraform.Terraform(work_dir)` runs `init`,
  `apply(variables)` (returns the output values), `destroy(variables)` and
  `output()`. Variables are passed through a temporary
  `terraform.tfvars.json`. Failures raise `TerraformError`.
  `create_test_workspace(scenario_path, target_dir)` copies the tree two
  levels above a scenario (its `.tf`, `.hcl`, `.json` and `.tfvars` files,
  skipping `.terraform` directories) so that relative module references
  keep working.
* `pdmigrate.harness.workspace.setup_test_workspace(scenario_path, tf_vars,
  test_name, root=None)` copies a scenario into a uniquely named directory
  (under `../tmp_integration_tests` by default) and returns a
  `TestWorkspace`. Its `cleanup()`, also run on leaving a `with` block,
  destroys the resources and removes the directory, unless the environment
  variable `PRESERVE_TF_RESOURCES` is `true`; if destroy fails, the
  directory is still removed and a `TerraformError` is raised.
  `pd_binary_path()` looks for a `pd` binary at `./pd`, `../pd` and
  `../bin/pd`.

```python
from pdmigrate.harness.terraform import create_test_workspace

create_test_workspace("terraform/scenarios/disk_migration", "/tmp/ws")
```

## What this package does not do

* It has no command-line tool. There is no `migrate disk` or
  `migrate compute` command, no flag validation and no confirmation prompt.
* It does not orchestrate a migration: the steps (stop, detach, snapshot,
  delete, recreate, attach, restart, clean up snapshots) are separate client
  calls that you sequence yourself.
* It ships no Compute Engine API bindings; you provide the low-level API
  objects the clients wrap.
* It contains no `pd` binary and no terraform scenarios; the harness only
  locates and drives them.

## Requirements

Python 3.10 or later. The test suite uses pytest (`pip install .[test]`).