"""Tests for scripts/check_config.py exit statuses."""

from scripts.check_config import main

BROKEN = """
config_id: broken
entity_types: [Entity]
roles: [checker]
rules:
  - id: r1
    name: No checkers
    entity_type: Entity
"""

SHADOWED = """
config_id: shadowed
entity_types: [Entity]
roles: [checker]
users:
  - {id: u1, name: Ben, role: checker}
rules:
  - {id: r1, name: First, entity_type: Entity, checker_roles: [checker]}
  - {id: r2, name: Second, entity_type: Entity, checker_roles: [checker]}
"""


class TestCheckConfig:
    def test_default_set_passes(self, capsys):
        assert main([]) == 0
        assert "OK" in capsys.readouterr().out

    def test_errors_fail(self, tmp_path, capsys):
        path = tmp_path / "broken.yaml"
        path.write_text(BROKEN)
        assert main([str(path)]) == 1
        assert "needs at least one checker" in capsys.readouterr().out

    def test_warnings_fail_only_when_strict(self, tmp_path):
        path = tmp_path / "shadowed.yaml"
        path.write_text(SHADOWED)
        assert main([str(path)]) == 0
        assert main([str(path), "--strict"]) == 1

    def test_unloadable_source(self, tmp_path, capsys):
        assert main([str(tmp_path / "missing.yaml")]) == 2
        assert "LOAD FAILED" in capsys.readouterr().out
