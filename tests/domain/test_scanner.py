"""Tests for the remote-state link scanner."""

from __future__ import annotations

from pathlib import Path

import pytest

from envie.domain.errors import FilesystemError
from envie.domain.scanner import (
    extract_used_outputs,
    find_dead_links,
    parse_config_line,
    scan_content,
    scan_directory,
    scan_file,
    terraform_files,
)

MULTI = """\
data "terraform_remote_state" "network" {
  backend = "gcs"
  config = {
    bucket = "tf-stable"   # shared bucket
    prefix = "network"
  }
}

data "terraform_remote_state" "database" {
  config = {
    key = "ephemeral/myapp-123/database/dynamodb/terraform.tfstate"
  }
}

locals {
  vpc_id = data.terraform_remote_state.network.outputs.vpc_id
  subnets = data.terraform_remote_state.network.outputs.private_subnets
}
"""


class TestScanContent:
    def test_finds_every_reference(self) -> None:
        links = scan_content(MULTI)
        assert [link.name for link in links] == ["network", "database"]

    def test_backend_type_and_config(self) -> None:
        network = scan_content(MULTI)[0]
        assert network.backend_type == "gcs"
        assert network.backend_config == {"bucket": "tf-stable", "prefix": "network"}
        assert network.line == 1

    def test_default_backend_is_s3(self) -> None:
        database = scan_content(MULTI)[1]
        assert database.backend_type == "s3"
        assert database.backend_config["key"].startswith("ephemeral/myapp-123/")

    def test_inline_config_map(self) -> None:
        text = (
            'data "terraform_remote_state" "x" {\n'
            '  backend = "s3"\n'
            '  config = { bucket = "b", region = "eu-west-1" }\n'
            "}\n"
        )
        (link,) = scan_content(text)
        assert link.backend_config == {"bucket": "b", "region": "eu-west-1"}

    def test_unterminated_reference_still_reported(self) -> None:
        text = 'data "terraform_remote_state" "dangling" {\n  backend = "azurerm"\n'
        (link,) = scan_content(text)
        assert link.name == "dangling"
        assert link.backend_type == "azurerm"

    def test_commented_lines_ignored(self) -> None:
        text = (
            'data "terraform_remote_state" "x" {\n'
            '  # backend = "gcs"\n'
            "}\n"
            '// data "terraform_remote_state" "y" {\n'
        )
        (link,) = scan_content(text)
        assert link.backend_type == "s3"

    def test_no_references(self) -> None:
        assert scan_content('resource "aws_s3_bucket" "b" {}\n') == []

    def test_source_is_recorded(self) -> None:
        (link,) = scan_content('data "terraform_remote_state" "x" {\n}\n', source="main.tf")
        assert link.source == "main.tf"


class TestParseConfigLine:
    @pytest.mark.parametrize(
        ("line", "expected"),
        [
            ('bucket = "tf"', ("bucket", "tf")),
            ('  key="a/b",', ("key", "a/b")),
            ("encrypt = true", ("encrypt", "true")),
            ("no assignment here", None),
            ('"quoted key" = "x"', None),
        ],
    )
    def test_lines(self, line: str, expected: tuple[str, str] | None) -> None:
        assert parse_config_line(line) == expected


class TestOutputsUsage:
    def test_extract_used_outputs(self) -> None:
        assert extract_used_outputs(MULTI, "network") == {"vpc_id", "private_subnets"}
        assert extract_used_outputs(MULTI, "database") == set()

    def test_find_dead_links(self) -> None:
        assert find_dead_links(MULTI) == ["database"]

    def test_find_dead_links_across_files(self) -> None:
        declared = scan_content('data "terraform_remote_state" "vpc" {\n}\n')
        assert find_dead_links("x = data.terraform_remote_state.vpc.outputs.id", declared) == []
        assert find_dead_links("x = 1", declared) == ["vpc"]


class TestFiles:
    def test_scan_directory_reads_tf_files_in_order(self, tmp_path: Path) -> None:
        (tmp_path / "b.tf").write_text('data "terraform_remote_state" "second" {\n}\n')
        (tmp_path / "a.tf").write_text('data "terraform_remote_state" "first" {\n}\n')
        (tmp_path / "notes.md").write_text('data "terraform_remote_state" "ignored" {\n}\n')
        links = scan_directory(tmp_path)
        assert [link.name for link in links] == ["first", "second"]
        assert links[0].source == str(tmp_path / "a.tf")

    def test_scan_directory_missing(self, tmp_path: Path) -> None:
        assert scan_directory(tmp_path / "nope") == []

    def test_scan_file_unreadable(self, tmp_path: Path) -> None:
        with pytest.raises(FilesystemError):
            scan_file(tmp_path / "missing.tf")

    def test_terraform_files(self, tmp_path: Path) -> None:
        (tmp_path / "main.tf").write_text("")
        (tmp_path / "backend.tf").write_text("")
        (tmp_path / "vars.tfvars").write_text("")
        (tmp_path / "nested.tf").mkdir()
        assert terraform_files(tmp_path) == [tmp_path / "backend.tf", tmp_path / "main.tf"]
        assert terraform_files(tmp_path / "nope") == []
