"""Tests for auto_repair.py - repair action implementations."""

from __future__ import annotations

import logging
from unittest.mock import AsyncMock, patch

import pytest

from noderepair.coordination.auto_repair import CommandAutoRepair, LoggingAutoRepair
from noderepair.utils.async_utils import CommandResult
from noderepair.utils.exceptions import RepairCommandError

from .conftest import make_node


class TestDefaultCallbacks:
    """Tests for the logging defaults of the outcome callbacks."""

    @pytest.mark.asyncio
    async def test_logging_auto_repair(self, caplog):
        repair = LoggingAutoRepair()
        node = make_node("node-a", ready=False)

        with caplog.at_level(logging.INFO):
            await repair.repair(node, 1)
            repair.repair_success(node, 1)
            repair.repair_attempt_failed(node, 2)
            repair.repair_attempts_failed(node, 3)

        text = caplog.text
        assert "Would repair node-a (attempt 1)" in text
        assert "healthy after 1" in text
        assert "attempt 2 for node-a failed" in text
        assert "Giving up on node-a after 3" in text


class TestCommandAutoRepair:
    """Tests for the external command repair."""

    def test_empty_command_rejected(self):
        with pytest.raises(ValueError):
            CommandAutoRepair("   ")

    def test_build_command_substitutes_per_argument(self):
        """Placeholders are replaced after splitting, so names stay one argument."""
        repair = CommandAutoRepair("ssh {node} 'sudo reboot' --attempt={attempts}")

        cmd = repair.build_command(make_node("node a;rm"), 2)

        assert cmd == ["ssh", "node a;rm", "sudo reboot", "--attempt=2"]

    @pytest.mark.asyncio
    async def test_repair_success(self):
        repair = CommandAutoRepair("reboot-node {node}", timeout=12.0)
        ok = CommandResult(returncode=0, stdout="done", stderr="")

        with patch(
            "noderepair.coordination.auto_repair.run_command",
            new=AsyncMock(return_value=ok),
        ) as mock_run:
            await repair.repair(make_node("node-a"), 1)

        mock_run.assert_awaited_once_with(["reboot-node", "node-a"], timeout=12.0)

    @pytest.mark.asyncio
    async def test_repair_nonzero_exit_raises(self):
        repair = CommandAutoRepair("reboot-node {node}")
        failed = CommandResult(returncode=3, stdout="", stderr="bmc unreachable")

        with patch(
            "noderepair.coordination.auto_repair.run_command",
            new=AsyncMock(return_value=failed),
        ):
            with pytest.raises(RepairCommandError) as exc_info:
                await repair.repair(make_node("node-a"), 2)

        err = exc_info.value
        assert err.node_name == "node-a"
        assert err.attempts == 2
        assert err.returncode == 3
        assert "bmc unreachable" in str(err)
