"""Pattern-based rewrites of Cargo manifests, remappings.txt and foundry.toml.

The template ships with path dependencies into the risc0-ethereum monorepo.
Once the example is lifted out of the monorepo those paths dangle, so every
manifest is rewritten to pull the crates from git instead.
"""

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)

MANIFEST_NAME = "Cargo.toml"
DEPENDENCIES = ("risc0-build-ethereum", "risc0-ethereum-contracts", "risc0-steel")
# Crates under apps/ run on the host and need the steel "host" feature
HOST_FEATURES = {"risc0-steel": ("host",)}
SCAN_EXCLUDE_DIRS = {".git", "target", "lib", "node_modules", "out", "cache"}

REMAPPING_UPDATES = (
    ("forge-std/=../../lib/forge-std/src/", "forge-std/=lib/forge-std/src/"),
    ("openzeppelin/=../../lib/openzeppelin-contracts/", "openzeppelin/=lib/openzeppelin-contracts/"),
    ("risc0/=../../contracts/src/", "risc0/=lib/risc0-ethereum/contracts/src/"),
)
OPENZEPPELIN_CONTRACTS_REMAPPING = "openzeppelin-contracts/=lib/openzeppelin-contracts/contracts"

FOUNDRY_LIBS_OLD = 'libs = ["../../lib", "../../contracts/src"]'
FOUNDRY_LIBS_NEW = 'libs = ["lib"]'
FOUNDRY_PROFILE = "[profile.default]"
FOUNDRY_AUTO_DETECT = "auto_detect_remappings = false"
FOUNDRY_FRESH = f"""{FOUNDRY_PROFILE}
src = "contracts"
out = "out"
{FOUNDRY_LIBS_NEW}
{FOUNDRY_AUTO_DETECT}
"""

_WORKSPACE_RE = re.compile(r"(?m)^[ \t]*\[workspace\][ \t]*$")


@dataclass
class ManifestRewrite:
    content: str
    updated: list[str] = field(default_factory=list)
    missing: list[str] = field(default_factory=list)
    ambiguous: list[str] = field(default_factory=list)
    changed: bool = False
    unreadable: bool = False


def git_dependency(name: str, repo: str, branch: str, features=()) -> str:
    line = f'{name} = {{ git = "{repo}", branch = "{branch}"'
    if features:
        line += ", features = [" + ", ".join(f'"{f}"' for f in features) + "]"
    return line + " }"


def is_apps_manifest(relative_path: Path) -> bool:
    return "apps" in Path(relative_path).parts[:-1]


def is_workspace_manifest(content: str) -> bool:
    return _WORKSPACE_RE.search(content) is not None


def _mentions(name: str, content: str) -> list[str]:
    """Every line declaring ``name``: plain keys, dotted keys and table headers."""
    esc = re.escape(name)
    pattern = re.compile(rf"(?m)^[ \t]*(?:{esc}[ \t]*[.=]|\[[^\]\n]*\.{esc}\]).*$")
    return [m.group(0) for m in pattern.finditer(content)]


def rewrite_manifest(content: str, repo: str, branch: str, apps: bool = False) -> ManifestRewrite:
    """Point the risc0 dependencies of one manifest at ``repo``@``branch``.

    Workspace manifests only have their ``name = { path = "..." }`` entries
    rewritten. Member manifests have any single-line ``name = ...`` entry
    rewritten, with the host feature added under ``apps/``. Declarations in
    any other shape are reported as ambiguous and left as they are.
    """
    workspace = is_workspace_manifest(content)
    result = ManifestRewrite(content=content)

    for name in DEPENDENCIES:
        esc = re.escape(name)
        features = HOST_FEATURES.get(name, ()) if apps and not workspace else ()
        target = git_dependency(name, repo, branch, features)
        if workspace:
            pattern = re.compile(
                rf'(?m)^([ \t]*){esc}[ \t]*=[ \t]*\{{[ \t]*path[ \t]*=[ \t]*"[^"\n]*"[ \t]*\}}[ \t]*$'
            )
        else:
            pattern = re.compile(rf"(?m)^([ \t]*){esc}[ \t]*=(.*)$")

        replaced = 0
        skipped = []

        def _substitute(match, target=target):
            nonlocal replaced
            if not workspace:
                value = match.group(2)
                if value.count("{") != value.count("}") or value.count("[") != value.count("]"):
                    skipped.append(match.group(0))
                    return match.group(0)
            replaced += 1
            return match.group(1) + target

        new_content = pattern.sub(_substitute, result.content)
        leftovers = [
            line for line in _mentions(name, new_content)
            if line.strip() != target and not pattern.fullmatch(line)
        ]

        if replaced:
            result.updated.append(name)
            result.changed = result.changed or new_content != result.content
            result.content = new_content
        if skipped or (leftovers and not replaced):
            result.ambiguous.append(name)
        elif not replaced and not _mentions(name, new_content):
            result.missing.append(name)

    return result


def find_manifests(root: Path, filename: str = MANIFEST_NAME) -> list[Path]:
    found = []
    for current, dirs, files in os.walk(root):
        dirs[:] = sorted(d for d in dirs if d not in SCAN_EXCLUDE_DIRS)
        if filename in files:
            found.append(Path(current) / filename)
    return found


def update_manifests(root: Path, repo: str, branch: str) -> list[tuple[Path, ManifestRewrite]]:
    """Rewrite every manifest under ``root`` in place; returns one entry per manifest."""
    results = []
    for path in find_manifests(root):
        relative = path.relative_to(root)
        try:
            content = path.read_text(encoding="utf-8")
        except UnicodeDecodeError as e:
            logger.warning("%s: not valid UTF-8, left unchanged (%s)", relative, e.reason)
            results.append((path, ManifestRewrite("", unreadable=True)))
            continue
        rewrite = rewrite_manifest(content, repo, branch, apps=is_apps_manifest(relative))
        for name in rewrite.ambiguous:
            logger.warning("%s: unrecognised declaration of %s left unchanged", relative, name)
        for name in rewrite.missing:
            logger.debug("%s: %s not declared", relative, name)
        if rewrite.changed:
            path.write_text(rewrite.content, encoding="utf-8")
            logger.info("%s: updated %s", relative, ", ".join(rewrite.updated))
        results.append((path, rewrite))
    return results


def rewrite_remappings(content: str | None) -> str:
    """Repoint the template's remappings at lib/; a missing file is created fresh."""
    if content is None:
        lines = [new for _, new in REMAPPING_UPDATES] + [OPENZEPPELIN_CONTRACTS_REMAPPING]
        return "\n".join(lines) + "\n"
    for old, new in REMAPPING_UPDATES:
        content = content.replace(old, new)
    if "openzeppelin-contracts/=" not in content:
        if content and not content.endswith("\n"):
            content += "\n"
        content += OPENZEPPELIN_CONTRACTS_REMAPPING + "\n"
    return content


def rewrite_foundry_config(content: str | None) -> str:
    if content is None:
        return FOUNDRY_FRESH
    content = content.replace(FOUNDRY_LIBS_OLD, FOUNDRY_LIBS_NEW)
    if "auto_detect_remappings" not in content:
        if FOUNDRY_PROFILE in content:
            content = content.replace(FOUNDRY_PROFILE, f"{FOUNDRY_PROFILE}\n{FOUNDRY_AUTO_DETECT}", 1)
        else:
            content = content.rstrip("\n") + f"\n\n{FOUNDRY_PROFILE}\n{FOUNDRY_AUTO_DETECT}\n"
    return content
