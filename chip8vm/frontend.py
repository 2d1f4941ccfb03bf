"""
Tkinter driver for the CHIP-8 machine
Runs a fixed number of instruction ticks per ~60 Hz frame, ticks the timers
once per frame and repaints the canvas.
"""

import logging
import tkinter as tk
from tkinter import Canvas

from .errors import Chip8Error
from .machine import DISPLAY_HEIGHT, DISPLAY_WIDTH, TICKS_PER_FRAME, Machine

logger = logging.getLogger(__name__)

DEFAULT_SCALE = 10
FRAME_MS = 16

# CHIP-8 keypad mapping to keyboard keys
# Original CHIP-8 keypad:     Modern keyboard mapping:
# 1 2 3 C                     1 2 3 4
# 4 5 6 D          =>         Q W E R
# 7 8 9 E                     A S D F
# A 0 B F                     Z X C V
KEY_MAPPING = {
    '1': 0x1, '2': 0x2, '3': 0x3, '4': 0xC,
    'q': 0x4, 'w': 0x5, 'e': 0x6, 'r': 0xD,
    'a': 0x7, 's': 0x8, 'd': 0x9, 'f': 0xE,
    'z': 0xA, 'x': 0x0, 'c': 0xB, 'v': 0xF
}


def map_key(keysym: str):
    """Translate a Tk keysym to a CHIP-8 key index, or None if unmapped"""
    return KEY_MAPPING.get(keysym.lower())


class Chip8Window:
    """Interactive window around a Machine"""

    def __init__(self, machine: Machine, scale: int = DEFAULT_SCALE,
                 ticks_per_frame: int = TICKS_PER_FRAME, title: str = "CHIP-8"):
        self.machine = machine
        self.scale = scale
        self.ticks_per_frame = ticks_per_frame
        self.error = None
        self._closing = False

        self.root = tk.Tk()
        self.root.title(title)
        self.root.resizable(False, False)

        self.canvas = Canvas(self.root, width=DISPLAY_WIDTH * scale,
                             height=DISPLAY_HEIGHT * scale, bg='black')
        self.canvas.pack()

        self.status = tk.Label(self.root, text="", font=('Courier', 9), anchor='w')
        self.status.pack(fill='x', padx=5, pady=2)

        self.root.bind('<KeyPress>', self._key_press)
        self.root.bind('<KeyRelease>', self._key_release)
        self.root.protocol("WM_DELETE_WINDOW", self.close)
        self.root.focus_set()

    def _key_press(self, event):
        if event.keysym == 'Escape':
            self.close()
            return
        key = map_key(event.keysym)
        if key is not None:
            self.machine.set_key(key, True)

    def _key_release(self, event):
        key = map_key(event.keysym)
        if key is not None:
            self.machine.set_key(key, False)

    def close(self):
        """Safely close the window and stop all callbacks"""
        if self._closing:
            return
        self._closing = True
        self.root.quit()
        self.root.destroy()

    def run_frame(self):
        """Advance the machine by one frame; returns False once it has crashed"""
        if self.machine.crashed:
            return False
        sound_was_active = self.machine.sound_active
        try:
            for _ in range(self.ticks_per_frame):
                self.machine.step()
        except Chip8Error as e:
            self.error = e
            logger.warning("Emulation stopped: %s", e)
            self.status.config(text=f"CRASHED: {e}")
            return False
        self.machine.tick_timers()
        if self.machine.sound_active and not sound_was_active:
            self.root.bell()
        return True

    def draw(self):
        self.canvas.delete("all")
        scale = self.scale
        for y, x in zip(*self.machine.display.nonzero()):
            x1 = int(x) * scale
            y1 = int(y) * scale
            self.canvas.create_rectangle(x1, y1, x1 + scale, y1 + scale,
                                         fill='white', outline='white')

    def _update(self):
        if self._closing:
            return
        try:
            if self.run_frame():
                self.status.config(text=f"PC: 0x{self.machine.program_counter:03X}  "
                                        f"I: 0x{self.machine.index_register:03X}")
            self.draw()
            self.root.after(FRAME_MS, self._update)
        except tk.TclError:
            # Window was destroyed, stop callbacks
            self._closing = True

    def mainloop(self):
        self._update()
        try:
            self.root.mainloop()
        finally:
            self._closing = True
        return self.error
