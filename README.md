# packagetester

A library for testing integration packages. It finds test folders inside a
package, loads pipeline test cases and compares them with their expected
results, checks dynamic fields, works out test coverage per data stream,
renders results as a human-readable table or as xUnit XML, and computes
content signatures of package versions kept in a storage tree.

## Installation

```
pip install packagetester
```

To run the test suite:

```
pip install packagetester[test]
pytest
```

## Modules

- `packagetester.core`: `TestResult`, `TestFolder`, `TestOptions`,
  `SkipConfig`, the `TestRunner` base class and the `ResultComposer` that
  times and completes a result. `TestCaseFailed` marks a failed test case;
  `TestRunError` is raised when a test cannot be run. Registries for runners
  (`register_runner`, `run`, `test_runners`), report formats
  (`register_report_format`, `format_report`) and report outputs
  (`register_report_output`, `write_report`). `find_test_folders` and
  `assume_test_folders` locate `data_stream/<name>/_dev/test/<type>` folders.
- `packagetester.formats`: `report_human` (failure details followed by a
  table) and `report_xunit` (one test suite per test type). Importing the
  module registers them as the `"human"` and `"xUnit"` report formats.
- `packagetester.outputs`: `report_to_stdout` prints a report between start
  and end markers and is registered as the `"stdout"` output;
  `report_to_file` writes it under `<directory>/test-results` and returns the
  file path.
- `packagetester.coverage`: `find_data_streams_without_tests`,
  `collect_coverage_details`, `to_cobertura_xml` and `write_coverage`, which
  writes a Cobertura report under `<build_dir>/test-coverage`.
- `packagetester.skipconfig`: `load_skippable_config` reads an optional
  `config.yml` and returns its `skip` setting.
- `packagetester.pipeline_case`: pipeline test configuration
  (`read_config_for_test_case`, merging `test-common-config.yml` with
  `<case>-config.yml`), and test cases from `.json` event files or `.log`
  raw input with an optional multiline pattern (`load_test_case_file`,
  `list_test_case_files`, `create_test_case`).
- `packagetester.pipeline_result`: `PipelineTestResult`, storing expected
  results (`write_test_result`), comparing with them (`compare_results`,
  which raises `TestCaseFailed` with a line diff), `verify_dynamic_fields`,
  `strip_empty_test_results` and `check_error_message`.
- `packagetester.ingest`: `load_ingest_pipeline_files` reads a data stream's
  pipelines and gives them per-run names, `convert_pipelines_to_json` turns
  YAML definitions into JSON, and `build_simulate_request` /
  `parse_simulate_response` build and read simulate API bodies.
- `packagetester.servicedeployer`: `ServiceContext` and its `aliases`,
  service variants (`read_variants_file`, `use_service_variant`),
  `find_dev_deploy_path`, `find_service_deployer`, and the Terraform
  helpers `build_terraform_environment` and `build_terraform_aliases`.
- `packagetester.system`: `SystemTestConfig`, `load_system_config` (which
  fills `{{ placeholders }}` from a `ServiceContext` via `apply_context`),
  `list_config_files`, `select_variants`, `filter_agents`,
  `wait_until_true`, `data_stream_index` and `create_test_run_id`.
- `packagetester.storage`: `PackageVersion`, `sort_versions`,
  `filter_packages`, `parse_package_versions`, `xxh64`, and directory
  signatures (`calculate_files_signature`, `calculate_package_signatures`).
- `packagetester.versioning`: `parse_version` and `parse_constraint` for
  semantic versions and constraints such as `^1.2.3` or `>= 1.0, < 2.0 || 3.x`.
- `packagetester.buildinfo`: `build_time_formatted` renders a Unix build
  time as RFC 3339.

## Example

```python
from packagetester.core import TestResult, format_report, write_report
import packagetester.formats  # registers "human" and "xUnit"
import packagetester.outputs  # registers "stdout"

results = [
    TestResult(name="test-access.log", package="nginx",
               test_type="pipeline", data_stream="access"),
]
report = format_report("human", results)
write_report("nginx", "stdout", report, "human")
```

Versions and package signatures:

```python
from packagetester.versioning import parse_constraint, parse_version
from packagetester.storage import PackageVersion, calculate_package_signatures

assert parse_constraint("^1.2.3").check(parse_version("1.4.0"))

signed = calculate_package_signatures("/path/to/storage",
                                      [PackageVersion("nginx", "1.2.0")])
print(signed[0])  # nginx-1.2.0: <xxhash64 hex digest>
```

## What it does not do

The package has no command-line program. It does not talk to Elasticsearch
or Kibana, does not start, stop or signal services, and does not clone,
commit to or push a package storage repository: it provides the file
handling, configuration, comparison and reporting around those steps, and a
`TestRunner` subclass supplies the rest.