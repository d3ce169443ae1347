"""
Tests for manifest rewriting — Cargo.toml, remappings.txt and foundry.toml.
"""

import textwrap
from pathlib import Path

from steel_cli.manifests import (
    FOUNDRY_FRESH,
    OPENZEPPELIN_CONTRACTS_REMAPPING,
    find_manifests,
    git_dependency,
    is_apps_manifest,
    is_workspace_manifest,
    rewrite_foundry_config,
    rewrite_manifest,
    rewrite_remappings,
    update_manifests,
)

REPO = "https://github.com/risc0/risc0-ethereum"
BRANCH = "release-1.3"

WORKSPACE_MANIFEST = textwrap.dedent("""\
    [workspace]
    resolver = "2"
    members = ["apps", "methods"]

    [workspace.dependencies]
    alloy = { version = "0.3" }
    risc0-build-ethereum = { path = "../../build" }
    risc0-ethereum-contracts = { path = "../../contracts" }
    risc0-steel = { path = "../../crates/steel" }
""")

APPS_MANIFEST = textwrap.dedent("""\
    [package]
    name = "apps"
    version = "0.1.0"

    [dependencies]
    anyhow = { workspace = true }
    risc0-ethereum-contracts = { workspace = true }
    risc0-steel = { workspace = true }
""")


def steel(features=()):
    return git_dependency("risc0-steel", REPO, BRANCH, features)


class TestGitDependency:
    def test_plain(self):
        assert git_dependency("risc0-steel", REPO, BRANCH) == (
            f'risc0-steel = {{ git = "{REPO}", branch = "{BRANCH}" }}'
        )

    def test_with_features(self):
        assert steel(("host",)).endswith(', features = ["host"] }')


class TestClassification:
    def test_apps_manifest(self):
        assert is_apps_manifest(Path("apps/Cargo.toml"))
        assert is_apps_manifest(Path("apps/bin/Cargo.toml"))
        assert not is_apps_manifest(Path("Cargo.toml"))
        assert not is_apps_manifest(Path("methods/guest/Cargo.toml"))

    def test_workspace_manifest(self):
        assert is_workspace_manifest(WORKSPACE_MANIFEST)
        assert not is_workspace_manifest(APPS_MANIFEST)


class TestRewriteManifest:
    """Tests for the per-manifest dependency rewrite."""

    def test_workspace_path_entries(self):
        result = rewrite_manifest(WORKSPACE_MANIFEST, REPO, BRANCH)
        assert result.changed
        assert sorted(result.updated) == ["risc0-build-ethereum", "risc0-ethereum-contracts", "risc0-steel"]
        assert steel() in result.content.splitlines()
        assert 'path = "../../' not in result.content
        assert 'alloy = { version = "0.3" }' in result.content

    def test_workspace_never_gets_host_feature(self):
        result = rewrite_manifest(WORKSPACE_MANIFEST, REPO, BRANCH, apps=True)
        assert "features" not in result.content

    def test_workspace_non_path_entry_is_ambiguous(self):
        content = '[workspace]\n\n[workspace.dependencies]\nrisc0-steel = { version = "1.3" }\n'
        result = rewrite_manifest(content, REPO, BRANCH)
        assert "risc0-steel" in result.ambiguous
        assert not result.changed
        assert result.content == content

    def test_apps_member_gets_host_feature(self):
        result = rewrite_manifest(APPS_MANIFEST, REPO, BRANCH, apps=True)
        lines = result.content.splitlines()
        assert steel(("host",)) in lines
        assert git_dependency("risc0-ethereum-contracts", REPO, BRANCH) in lines
        assert result.missing == ["risc0-build-ethereum"]
        assert "anyhow = { workspace = true }" in lines

    def test_other_member_has_no_feature(self):
        result = rewrite_manifest(APPS_MANIFEST, REPO, BRANCH, apps=False)
        assert steel() in result.content.splitlines()

    def test_indentation_preserved(self):
        content = "[dependencies]\n    risc0-steel = { workspace = true }\n"
        result = rewrite_manifest(content, REPO, BRANCH)
        assert f"    {steel()}" in result.content.splitlines()

    def test_similar_names_untouched(self):
        content = '[dependencies]\nrisc0-steel-extra = "1.0"\n'
        result = rewrite_manifest(content, REPO, BRANCH)
        assert result.content == content
        assert "risc0-steel" in result.missing

    def test_multiline_table_is_ambiguous(self):
        content = '[dependencies]\nrisc0-steel = { workspace = true,\n    features = ["host"] }\n'
        result = rewrite_manifest(content, REPO, BRANCH, apps=True)
        assert "risc0-steel" in result.ambiguous
        assert result.content == content

    def test_dotted_key_is_ambiguous(self):
        content = "[dependencies]\nrisc0-steel.workspace = true\n"
        result = rewrite_manifest(content, REPO, BRANCH)
        assert result.ambiguous == ["risc0-steel"]
        assert result.content == content

    def test_table_header_is_ambiguous(self):
        content = "[dependencies.risc0-steel]\nworkspace = true\n"
        result = rewrite_manifest(content, REPO, BRANCH)
        assert result.ambiguous == ["risc0-steel"]

    def test_rewrite_is_idempotent(self):
        once = rewrite_manifest(APPS_MANIFEST, REPO, BRANCH, apps=True)
        twice = rewrite_manifest(once.content, REPO, BRANCH, apps=True)
        assert twice.content == once.content
        assert not twice.changed
        assert not twice.ambiguous


class TestUpdateManifests:
    """Tests for walking a project and rewriting in place."""

    def _make_tree(self, root: Path) -> None:
        (root / "apps").mkdir(parents=True)
        (root / "methods" / "guest").mkdir(parents=True)
        (root / "target" / "debug").mkdir(parents=True)
        (root / "Cargo.toml").write_text(WORKSPACE_MANIFEST)
        (root / "apps" / "Cargo.toml").write_text(APPS_MANIFEST)
        (root / "methods" / "guest" / "Cargo.toml").write_text(
            "[dependencies]\nrisc0-steel = { workspace = true }\n"
        )
        (root / "target" / "debug" / "Cargo.toml").write_text(
            "[dependencies]\nrisc0-steel = { workspace = true }\n"
        )

    def test_find_skips_build_dirs(self, tmp_path: Path):
        self._make_tree(tmp_path)
        found = {p.relative_to(tmp_path).as_posix() for p in find_manifests(tmp_path)}
        assert found == {"Cargo.toml", "apps/Cargo.toml", "methods/guest/Cargo.toml"}

    def test_rewrites_in_place(self, tmp_path: Path):
        self._make_tree(tmp_path)
        results = update_manifests(tmp_path, REPO, BRANCH)
        assert len(results) == 3
        assert steel(("host",)) in (tmp_path / "apps" / "Cargo.toml").read_text()
        guest = (tmp_path / "methods" / "guest" / "Cargo.toml").read_text()
        assert steel() in guest and "features" not in guest
        untouched = (tmp_path / "target" / "debug" / "Cargo.toml").read_text()
        assert "workspace = true" in untouched

    def test_undecodable_manifest_skipped(self, tmp_path: Path):
        self._make_tree(tmp_path)
        binary = b"[dependencies]\nrisc0-steel = \xff\n"
        (tmp_path / "methods" / "guest" / "Cargo.toml").write_bytes(binary)
        results = dict(update_manifests(tmp_path, REPO, BRANCH))
        guest = tmp_path / "methods" / "guest" / "Cargo.toml"
        assert results[guest].unreadable
        assert not results[guest].changed
        assert guest.read_bytes() == binary
        assert steel(("host",)) in (tmp_path / "apps" / "Cargo.toml").read_text()


class TestRemappings:
    def test_template_paths_repointed(self):
        content = (
            "forge-std/=../../lib/forge-std/src/\n"
            "openzeppelin/=../../lib/openzeppelin-contracts/\n"
            "risc0/=../../contracts/src/\n"
        )
        result = rewrite_remappings(content)
        assert result.splitlines() == [
            "forge-std/=lib/forge-std/src/",
            "openzeppelin/=lib/openzeppelin-contracts/",
            "risc0/=lib/risc0-ethereum/contracts/src/",
            OPENZEPPELIN_CONTRACTS_REMAPPING,
        ]

    def test_contracts_remapping_not_duplicated(self):
        content = f"{OPENZEPPELIN_CONTRACTS_REMAPPING}\n"
        assert rewrite_remappings(content) == content

    def test_missing_trailing_newline(self):
        result = rewrite_remappings("forge-std/=lib/forge-std/src/")
        assert result == f"forge-std/=lib/forge-std/src/\n{OPENZEPPELIN_CONTRACTS_REMAPPING}\n"

    def test_missing_file_created(self):
        result = rewrite_remappings(None)
        assert "risc0/=lib/risc0-ethereum/contracts/src/" in result
        assert result.endswith(OPENZEPPELIN_CONTRACTS_REMAPPING + "\n")


class TestFoundryConfig:
    def test_libs_and_auto_detect(self):
        content = '[profile.default]\nsrc = "contracts"\nlibs = ["../../lib", "../../contracts/src"]\n'
        result = rewrite_foundry_config(content)
        assert result.splitlines() == [
            "[profile.default]",
            "auto_detect_remappings = false",
            'src = "contracts"',
            'libs = ["lib"]',
        ]

    def test_existing_auto_detect_kept(self):
        content = "[profile.default]\nauto_detect_remappings = true\n"
        assert rewrite_foundry_config(content) == content

    def test_no_profile_section(self):
        result = rewrite_foundry_config('[fmt]\nline_length = 100\n')
        assert result.endswith("[profile.default]\nauto_detect_remappings = false\n")

    def test_missing_file_created(self):
        assert rewrite_foundry_config(None) == FOUNDRY_FRESH
