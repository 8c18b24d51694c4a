"""
Keyboard listener used as the operator's "done" signal during interactive setup.
"""

import logging
import threading

from pynput import keyboard

logger = logging.getLogger(__name__)


class ConfirmKeyListener:
    """Sets an event when the confirm key (Enter by default) is pressed.

    Usage:
        with ConfirmKeyListener() as done:
            recorder.run(done)
    """

    def __init__(self, key: keyboard.Key = keyboard.Key.enter):
        self.key = key
        self.event = threading.Event()
        self.listener = None

    def on_press(self, key):
        if key == self.key:
            logger.debug(f"Confirm key {key} pressed")
            self.event.set()
            return False  # Stop listener

    def start(self) -> threading.Event:
        self.event.clear()
        self.listener = keyboard.Listener(on_press=self.on_press)
        self.listener.daemon = True
        self.listener.start()
        return self.event

    def stop(self):
        if self.listener:
            self.listener.stop()
            self.listener = None

    def __enter__(self) -> threading.Event:
        return self.start()

    def __exit__(self, exc_type, exc, tb):
        self.stop()
