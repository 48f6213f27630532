from pathlib import Path
import textwrap

import pytest

from stint_mcp.policy import BudgetPolicy, PolicyLoadError, PolicyLoader, load_policy


def write_policy(path: Path, body: str) -> Path:
    path.write_text(textwrap.dedent(body).strip() + "\n", encoding="utf-8")
    return path


def test_loader_without_path_returns_defaults() -> None:
    assert PolicyLoader().load() == BudgetPolicy()


def test_loader_reads_camel_case_options(tmp_path: Path) -> None:
    path = write_policy(
        tmp_path / "policy.yaml",
        """
        maxFilesPerSession: 4
        maxLinesPerSession: 250
        maxTokenFraction: 0.85
        softTokenFraction: 0.7
        """,
    )

    policy = load_policy(path)

    assert policy.max_files_per_session == 4
    assert policy.max_lines_per_session == 250
    assert policy.max_tests_per_session == 20
    assert policy.max_token_fraction == pytest.approx(0.85)


def test_empty_policy_file_uses_defaults(tmp_path: Path) -> None:
    path = write_policy(tmp_path / "policy.yaml", "")

    assert PolicyLoader(path).load() == BudgetPolicy()


def test_missing_policy_file_is_an_error(tmp_path: Path) -> None:
    with pytest.raises(PolicyLoadError, match="not found"):
        PolicyLoader(tmp_path / "absent.yaml").load()


def test_loader_reports_yaml_errors(tmp_path: Path) -> None:
    path = write_policy(tmp_path / "policy.yaml", "maxFilesPerSession: [1, 2")

    with pytest.raises(PolicyLoadError, match="parse YAML"):
        PolicyLoader(path).load()


def test_loader_requires_a_mapping(tmp_path: Path) -> None:
    path = write_policy(tmp_path / "policy.yaml", "- 1\n- 2")

    with pytest.raises(PolicyLoadError, match="mapping"):
        PolicyLoader(path).load()


def test_loader_reports_validation_error(tmp_path: Path) -> None:
    path = write_policy(
        tmp_path / "policy.yaml",
        """
        maxFilesPerSession: 0
        maxTokensPerSession: 10
        """,
    )

    with pytest.raises(PolicyLoadError, match="validation error"):
        PolicyLoader(path).load()
