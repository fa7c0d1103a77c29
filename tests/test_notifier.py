import asyncio

import pytest

from app.services.notifier import TOAST_SECONDS, Notifier


@pytest.mark.unit
class TestNotifier:
    def test_default_duration(self):
        assert Notifier().duration == TOAST_SECONDS == 3.0

    async def test_auto_dismiss(self):
        # Arrange
        notifier = Notifier(duration=0.01)

        # Act
        notifier.show("Bookmark saved")

        # Assert
        assert notifier.message == "Bookmark saved"
        await asyncio.sleep(0.05)
        assert notifier.message is None

    async def test_new_message_restarts_timer(self):
        notifier = Notifier(duration=0.05)

        notifier.show("first")
        await asyncio.sleep(0.03)
        notifier.show("second")
        await asyncio.sleep(0.03)

        assert notifier.message == "second"
        notifier.dismiss()
        assert notifier.message is None

    def test_without_loop_message_stays(self):
        notifier = Notifier()

        notifier.show("kept")

        assert notifier.message == "kept"
