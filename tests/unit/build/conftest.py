"""Shared fixtures for pipeline and orchestrator tests.

The engine build tool is replaced by a small Python script run with the
current interpreter. It copies the staged plugin to the output directory
and adds the binaries a real build would produce.
"""

import json
import sys
from pathlib import Path

import pytest

from enginepack.build.pipeline import PipelineSettings, TargetPipeline
from enginepack.build.runner import BuildStageRunner
from enginepack.packages import (
    ArchiveWriter,
    ArtifactCategory,
    Cache,
    ManifestRewrite,
    ProjectionRule,
    ToolchainConfigManager,
    VariantSpec,
)

FAKE_TOOL = '''
import json
import shutil
import sys
from pathlib import Path

args = sys.argv[1:]

if args[0] == "upgrade":
    project = Path(args[1])
    print(f"Resaving packages in {project}")
    (project.parent / "Upgraded.txt").write_text("resaved")
    sys.exit(0)

opts = dict(zip(args[::2], args[1::2]))
plugin = Path(opts["--plugin"])
output = Path(opts["--output"])
fail_on = opts.get("--fail-on", "").split(",")
slot = Path(opts["--slot"])

print(f"Building {plugin.name} for {opts['--version']}")
print("Toolchain slot: " + (slot.read_text() if slot.exists() else "absent"))
if opts["--version"] in fail_on:
    print("error C2065: undeclared identifier")
    sys.exit(3)

manifest = json.loads(plugin.read_text(encoding="utf-8"))
shutil.copytree(plugin.parent, output, dirs_exist_ok=True)
(output / "Binaries" / "Win64").mkdir(parents=True, exist_ok=True)
(output / "Binaries" / "Win64" / "UnrealEditor-Plugin.dll").write_text("binary")
(output / "Intermediate").mkdir(exist_ok=True)
(output / "Intermediate" / "Build.obj").write_text("object")
print(f"Built against {manifest.get('EngineVersion')}")
'''


@pytest.fixture
def fake_tool(tmp_path):
    """Path to the fake build tool script."""
    script = tmp_path / "tools" / "fake_uat.py"
    script.parent.mkdir(parents=True)
    script.write_text(FAKE_TOOL)
    return script


@pytest.fixture
def plugin_source(tmp_path):
    """A plugin source tree with files that must not ship."""
    source = tmp_path / "src" / "MyPlugin"
    (source / "Source" / "MyPlugin" / "Private").mkdir(parents=True)
    (source / "Source" / "MyPlugin" / "Private" / "MyPlugin.cpp").write_text("// plugin\n")
    (source / "Binaries" / "Win64").mkdir(parents=True)
    (source / "Binaries" / "Win64" / "stale.dll").write_text("stale")
    (source / "Source" / "MyPlugin" / "Intermediate").mkdir()
    (source / "Source" / "MyPlugin" / "Intermediate" / "nested.obj").write_text("nested")
    (source / "Content").mkdir()
    (source / "Content" / "Icon.uasset").write_text("asset")
    (source / "Content" / "Icon.uasset.tmp").write_text("temp")
    manifest = {
        "FileVersion": 3,
        "VersionName": "1.2",
        "FriendlyName": "My Plugin",
        "EngineVersion": "4.27.0",
        "Modules": [{"Name": "MyPlugin", "Type": "Runtime", "LoadingPhase": "Default"}],
        "Plugins": [
            {"Name": "EditorScriptingUtilities", "Enabled": True},
            {"Name": "DevHelpers", "Enabled": True},
        ],
    }
    (source / "MyPlugin.uplugin").write_text(json.dumps(manifest, indent="\t"))
    return source


@pytest.fixture
def example_source(tmp_path):
    """An example project that depends on the plugin."""
    example = tmp_path / "src" / "MyPluginExample"
    (example / "Content" / "Maps").mkdir(parents=True)
    (example / "Content" / "Maps" / "Demo.umap").write_text("map")
    (example / "Saved" / "Logs").mkdir(parents=True)
    (example / "Saved" / "Logs" / "Editor.log").write_text("log")
    uproject = {
        "FileVersion": 3,
        "EngineAssociation": "4.27",
        "Category": "Samples",
        "Plugins": [{"Name": "MyPlugin", "Enabled": True}],
    }
    (example / "MyPluginExample.uproject").write_text(json.dumps(uproject, indent="\t"))
    return example


@pytest.fixture
def engine_roots(tmp_path):
    """Installed engines for 5.2 and 5.3. 5.4 is configured but not installed."""
    roots = {}
    for version in ["5.2", "5.3", "5.4"]:
        root = tmp_path / "engines" / f"UE_{version}"
        if version != "5.4":
            root.mkdir(parents=True)
        roots[version] = root
    return roots


@pytest.fixture
def slot_path(tmp_path):
    return tmp_path / "config" / "UnrealBuildTool" / "BuildConfiguration.xml"


@pytest.fixture
def cache(tmp_path):
    project = tmp_path / "project"
    project.mkdir()
    return Cache(project)


def build_command(fake_tool: Path, slot_path: Path, fail_on: str = "") -> str:
    command = (
        f'"{sys.executable}" "{fake_tool}" --plugin {{manifest}} '
        f'--output {{output}} --version {{version}} --slot "{slot_path}"'
    )
    if fail_on:
        command += f" --fail-on {fail_on}"
    return command


@pytest.fixture
def make_pipeline(plugin_source, example_source, engine_roots, fake_tool, slot_path, cache):
    """Factory building a TargetPipeline over the fixture project."""

    def _make(fail_on: str = "", variants: bool = False, upgrade: bool = True, **overrides) -> TargetPipeline:
        settings = PipelineSettings(
            name="MyPlugin",
            source_dir=plugin_source,
            manifest_name="MyPlugin.uplugin",
            build_command=build_command(fake_tool, slot_path, fail_on),
            engine_roots=dict(engine_roots),
            exclusion_rule=ProjectionRule.create(
                directories=["Binaries", "Intermediate", "Saved"],
                patterns=["*.tmp"],
            ),
            package_rule=ProjectionRule.create(directories=["Binaries", "Intermediate"]),
            remove_dependencies=["DevHelpers"],
        )
        if variants:
            settings.example_dir = example_source
            settings.example_manifest = "MyPluginExample.uproject"
            if upgrade:
                settings.upgrade_command = f'"{sys.executable}" "{fake_tool}" upgrade {{project}}'
            settings.variants = [
                VariantSpec(
                    name="full",
                    category=ArtifactCategory.VARIANT_A,
                    rewrite=ManifestRewrite(manifest="MyPluginExample.uproject"),
                ),
                VariantSpec(
                    name="blueprint",
                    category=ArtifactCategory.VARIANT_B,
                    rule=ProjectionRule.create(force_remove=["Plugins/MyPlugin"]),
                    rewrite=ManifestRewrite(
                        manifest="MyPluginExample.uproject",
                        remove_dependencies=("MyPlugin",),
                    ),
                ),
            ]
        for key, value in overrides.items():
            setattr(settings, key, value)

        return TargetPipeline(
            settings,
            cache,
            ToolchainConfigManager(slot_path),
            runner=BuildStageRunner(sink=lambda line: None),
            archiver=ArchiveWriter(attempts=2, retry_delay=0),
        )

    return _make
