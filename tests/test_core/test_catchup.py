"""Tests for catchup.py module."""

from unittest.mock import Mock

import httpx
import pytest

from algorun.core.catchup import CatchupTrigger
from algorun.core.errors import CatchpointFetchError, ProcessError
from algorun.core.process import CommandResult, NodeController

LABEL = "38930000#5LEGMSRWJ7KNZ4GAYGKMCHN6LIEB5AJ2SZNAGQIIQ6OV3QMGJ4VQ"


@pytest.fixture
def controller():
    controller = Mock(spec=NodeController)
    controller.catchup.return_value = CommandResult(["goal"], 0, "Started catchup")
    return controller


def _trigger(handler, controller) -> CatchupTrigger:
    return CatchupTrigger(httpx.Client(transport=httpx.MockTransport(handler)), controller)


class TestCatchupTrigger:
    """Test CatchupTrigger class."""

    def test_fetch_strips_label(self, controller):
        trigger = _trigger(lambda request: httpx.Response(200, text=f"  {LABEL}\n"), controller)
        assert trigger.fetch_catchpoint() == LABEL

    def test_trigger_passes_label_to_goal(self, controller):
        trigger = _trigger(lambda request: httpx.Response(200, text=LABEL + "\n"), controller)

        assert trigger.trigger_catchup() == LABEL
        controller.catchup.assert_called_once_with(LABEL)

    def test_empty_body(self, controller):
        trigger = _trigger(lambda request: httpx.Response(200, text="\n"), controller)

        with pytest.raises(CatchpointFetchError, match="empty"):
            trigger.trigger_catchup()
        controller.catchup.assert_not_called()

    def test_http_error(self, controller):
        trigger = _trigger(lambda request: httpx.Response(503), controller)

        with pytest.raises(CatchpointFetchError, match="503"):
            trigger.trigger_catchup()
        controller.catchup.assert_not_called()

    def test_transport_error(self, controller):
        def handler(request):
            raise httpx.ConnectTimeout("timed out", request=request)

        with pytest.raises(CatchpointFetchError):
            _trigger(handler, controller).fetch_catchpoint()

    def test_goal_rejection_propagates(self, controller):
        controller.catchup.side_effect = ProcessError("bad label", argv=["goal"], returncode=1)
        trigger = _trigger(lambda request: httpx.Response(200, text=LABEL), controller)

        with pytest.raises(ProcessError):
            trigger.trigger_catchup()
