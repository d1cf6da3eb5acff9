from __future__ import annotations

import logging
import threading

from plyer import notification as plyer_notification  # type: ignore[import-not-found]

logger = logging.getLogger(__name__)

APP_NAME = "aw-watcher-editor"


def notify(title: str, message: str, timeout: int = 5) -> None:
    """Send a passive desktop notification without blocking the caller."""
    def _do() -> None:
        try:
            notify_func = getattr(plyer_notification, "notify", None)
            if callable(notify_func):
                notify_func(title=title, message=message, timeout=timeout, app_name=APP_NAME)  # type: ignore[no-untyped-call]
            else:
                logger.warning("%s: %s", title, message)
        except Exception as e:
            # plyer has no backend on some platforms (headless, missing dbus)
            logger.warning("Desktop notification failed (%s): %s - %s", e, title, message)

    t = threading.Thread(target=_do, name="aw-watcher-editor-notify", daemon=True)
    t.start()
