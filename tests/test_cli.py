"""Tests for CLI commands."""

import tempfile
from pathlib import Path

import pytest
from typer.testing import CliRunner

from aisync.cli import app


class TestCLI:
    """Test CLI commands."""

    @pytest.fixture
    def runner(self) -> CliRunner:
        """Create CLI test runner."""
        return CliRunner()

    @pytest.fixture
    def project(self, runner: CliRunner) -> Path:
        """Create a temporary project initialized with aisync init."""
        with tempfile.TemporaryDirectory() as temp_dir:
            project_path = Path(temp_dir) / "demo"
            project_path.mkdir()
            result = runner.invoke(app, ["init", "--path", str(project_path)])
            assert result.exit_code == 0
            yield project_path

    def test_version(self, runner: CliRunner) -> None:
        """Test the version flag."""
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert "aisync version" in result.stdout

    def test_init_creates_layout(self, runner: CliRunner) -> None:
        """Test that init creates the content directory and starter files."""
        with tempfile.TemporaryDirectory() as temp_dir:
            result = runner.invoke(app, ["init", "--path", temp_dir, "--name", "Shop"])

            assert result.exit_code == 0
            assert "Initialized" in result.stdout

            content_dir = Path(temp_dir) / ".ai"
            for directory in ("rules", "personas", "commands", "hooks"):
                assert (content_dir / directory).is_dir()
            assert "project_name: Shop" in (content_dir / "config.yaml").read_text()
            assert (content_dir / "rules" / "code-style.md").exists()

    def test_init_keeps_existing_config(self, runner: CliRunner, project: Path) -> None:
        """Test that init asks before overwriting a configuration."""
        config_path = project / ".ai" / "config.yaml"
        config_path.write_text("project_name: custom\n")

        result = runner.invoke(app, ["init", "--path", str(project)], input="n\n")

        assert result.exit_code == 0
        assert "Initialization cancelled" in result.stdout
        assert config_path.read_text() == "project_name: custom\n"

    def test_init_force_overwrites(self, runner: CliRunner, project: Path) -> None:
        """Test overwriting with --force."""
        config_path = project / ".ai" / "config.yaml"
        config_path.write_text("project_name: custom\n")

        result = runner.invoke(app, ["init", "--path", str(project), "--force"])

        assert result.exit_code == 0
        assert "project_name: demo" in config_path.read_text()

    def test_sync_writes_artifacts(self, runner: CliRunner, project: Path) -> None:
        """Test generating every target's artifacts."""
        result = runner.invoke(app, ["sync", "--project", str(project)])

        assert result.exit_code == 0
        assert "Updated 5 of 5 artifacts for cursor, claude, factory" in result.stdout
        assert (project / ".cursor" / "rules" / "code-style.mdc").exists()
        assert (project / ".factory" / "skills" / "code-style" / "SKILL.md").exists()
        assert (project / "AGENTS.md").exists()

        skill = (project / ".claude" / "skills" / "code-style" / "SKILL.md").read_text()
        assert "Prefer the Grep tool" in skill
        assert "Generated by aisync" in skill
        assert "Prefer the Grep tool" not in (project / ".cursor" / "rules" / "code-style.mdc").read_text()
        assert "@.claude/skills/code-style/SKILL.md" in (project / "CLAUDE.md").read_text()

        again = runner.invoke(app, ["sync", "--project", str(project)])
        assert again.exit_code == 0
        assert "Updated 0 of 5 artifacts" in again.stdout

    def test_sync_single_target(self, runner: CliRunner, project: Path) -> None:
        """Test restricting sync to one platform."""
        result = runner.invoke(app, ["sync", "--project", str(project), "--target", "claude"])

        assert result.exit_code == 0
        assert "Updated 2 of 2 artifacts for claude" in result.stdout
        assert (project / "CLAUDE.md").exists()
        assert not (project / ".cursor").exists()

    def test_sync_dry_run(self, runner: CliRunner, project: Path) -> None:
        """Test that dry run reports without writing."""
        result = runner.invoke(app, ["sync", "--project", str(project), "--dry-run"])

        assert result.exit_code == 0
        assert "Would update 5 of 5 artifacts" in result.stdout
        assert not (project / "CLAUDE.md").exists()
        assert not (project / ".claude").exists()

    def test_sync_aborts_on_errors(self, runner: CliRunner, project: Path) -> None:
        """Test that content errors stop the sync before writing."""
        (project / ".ai" / "rules" / "broken.md").write_text("---\nname: [broken\n---\nBody\n")

        result = runner.invoke(app, ["sync", "--project", str(project)])

        assert result.exit_code == 1
        assert "Sync aborted" in result.stdout
        assert not (project / "CLAUDE.md").exists()

    def test_sync_invalid_config(self, runner: CliRunner, project: Path) -> None:
        """Test that a bad configuration is reported."""
        (project / ".ai" / "config.yaml").write_text("targets: [vscode]\n")

        result = runner.invoke(app, ["sync", "--project", str(project)])

        assert result.exit_code == 1
        assert "Invalid configuration" in result.stdout

    def test_validate_success(self, runner: CliRunner, project: Path) -> None:
        """Test validating clean content."""
        result = runner.invoke(app, ["validate", "--project", str(project)])

        assert result.exit_code == 0
        assert "All content is valid" in result.stdout

    def test_validate_failure(self, runner: CliRunner, project: Path) -> None:
        """Test validating content with a bad condition."""
        (project / ".ai" / "rules" / "odd.md").write_text(
            '---\nname: odd\nwhen: "brew:wget"\n---\nBody\n',
        )

        result = runner.invoke(app, ["validate", "--project", str(project)])

        assert result.exit_code == 1
        assert "Validation failed: 1 errors, 0 warnings" in result.stdout

    def test_validate_strict_fails_on_warnings(self, runner: CliRunner, project: Path) -> None:
        """Test that strict mode treats warnings as failures."""
        (project / ".ai" / "rules" / "open.md").write_text(
            "---\nname: open\n---\n{{#claude}} never closed\n",
        )

        lenient = runner.invoke(app, ["validate", "--project", str(project)])
        strict = runner.invoke(app, ["validate", "--project", str(project), "--strict"])

        assert lenient.exit_code == 0
        assert strict.exit_code == 1

    def test_status(self, runner: CliRunner, project: Path) -> None:
        """Test comparing artifacts with the disk."""
        before = runner.invoke(app, ["status", "--project", str(project)])
        assert before.exit_code == 0
        assert "aisync status" in before.stdout
        assert "CLAUDE.md" in before.stdout
        assert "new" in before.stdout

        runner.invoke(app, ["sync", "--project", str(project)])
        after = runner.invoke(app, ["status", "--project", str(project)])
        assert "unchanged" in after.stdout
        assert "new" not in after.stdout

    def test_inspect(self, runner: CliRunner, project: Path) -> None:
        """Test listing resolved documents."""
        result = runner.invoke(app, ["inspect", "--project", str(project), "--target", "cursor"])

        assert result.exit_code == 0
        assert "aisync configuration" in result.stdout
        assert "cursor content" in result.stdout
        assert "code-style" in result.stdout
