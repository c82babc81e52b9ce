# Copyright (C) 2026 Arnd Brandes.
# Dieses Programm kann durch jedermann gemaess den Bestimmungen der Deutschen Freien Software Lizenz genutzt werden.

from __future__ import annotations

import os
import random
import traceback
from datetime import datetime

from kivy.app import App
from kivy.clock import Clock
from kivy.core.window import Window
from kivy.uix.boxlayout import BoxLayout
from kivy.uix.button import Button
from kivy.uix.label import Label
from kivy.uix.popup import Popup
from kivy.uix.screenmanager import ScreenManager, Screen
from kivy.uix.spinner import Spinner
from kivy.uix.textinput import TextInput
from kivy.uix.togglebutton import ToggleButton
from kivy.utils import platform as kivy_platform

import backup_io
import datasets
import progress_store
import session
import training

__version__ = "0.1"

IS_ANDROID = (kivy_platform == "android")

STORE_FILENAME = "store.json"

INPUT_HEIGHT = 72
BUTTON_HEIGHT = 64
INPUT_FONT_SIZE = 26
BUTTON_FONT_SIZE = 26
SPINNER_FONT_SIZE = 26
LABEL_FONT_SIZE = 24
TEXT_COLOR = (0.12, 0.1, 0.08, 1)
SURFACE_BG = (0.96, 0.98, 0.99, 1)
INPUT_BG = (1, 1, 1, 1)
BUTTON_BG = (0.82, 0.9, 0.95, 1)


def _styled_text_input(**kwargs) -> TextInput:
    kwargs.setdefault("font_size", INPUT_FONT_SIZE)
    kwargs.setdefault("foreground_color", TEXT_COLOR)
    kwargs.setdefault("background_color", INPUT_BG)
    return TextInput(**kwargs)


def _info(title: str, text: str, size_hint=(0.7, 0.35)) -> None:
    Popup(title=title, content=Label(text=text), size_hint=size_hint).open()


class TopBar(BoxLayout):
    def __init__(self, app, title: str, **kwargs):
        super().__init__(orientation="horizontal", size_hint_y=None, height=BUTTON_HEIGHT, **kwargs)
        self.app = app
        self.add_widget(Button(text="≡", size_hint_x=None, width=BUTTON_HEIGHT,
                               on_release=self.app.open_menu))
        self.add_widget(Label(text=title, font_size=LABEL_FONT_SIZE + 4, color=TEXT_COLOR))


class MenuScreen(Screen):
    def __init__(self, app, **kwargs):
        super().__init__(**kwargs)
        layout = BoxLayout(orientation="vertical")
        layout.add_widget(TopBar(app, "LinguaWrite"))
        body = BoxLayout(orientation="vertical", padding=16, spacing=12)
        body.add_widget(Button(text="Start training", on_release=lambda *_: app.show_setup()))
        body.add_widget(Button(text="Statistics", on_release=lambda *_: app.show_stats()))
        layout.add_widget(body)
        self.add_widget(layout)


class SetupScreen(Screen):
    def __init__(self, app, **kwargs):
        super().__init__(**kwargs)
        self.app = app
        layout = BoxLayout(orientation="vertical")
        layout.add_widget(TopBar(app, "Training"))
        body = BoxLayout(orientation="vertical", padding=16, spacing=10)

        body.add_widget(Label(text="Dataset", size_hint_y=None, height=32))
        keys = app.dataset_keys or [""]
        self.dataset_spinner = Spinner(text=keys[0], values=keys, size_hint_y=None, height=BUTTON_HEIGHT)
        body.add_widget(self.dataset_spinner)

        body.add_widget(Label(text="Levels (none = all)", size_hint_y=None, height=32))
        level_row = BoxLayout(size_hint_y=None, height=BUTTON_HEIGHT, spacing=4)
        self.level_buttons = {}
        for level in datasets.LEVELS:
            btn = ToggleButton(text=level)
            self.level_buttons[level] = btn
            level_row.add_widget(btn)
        body.add_widget(level_row)

        body.add_widget(Label(text="Direction", size_hint_y=None, height=32))
        dir_row = BoxLayout(size_hint_y=None, height=BUTTON_HEIGHT, spacing=8)
        self.dir_forward = ToggleButton(text="Forward", group="direction", state="down")
        self.dir_reverse = ToggleButton(text="Reverse", group="direction")
        dir_row.add_widget(self.dir_forward)
        dir_row.add_widget(self.dir_reverse)
        body.add_widget(dir_row)

        mode_row = BoxLayout(size_hint_y=None, height=BUTTON_HEIGHT, spacing=8)
        mode_row.add_widget(Button(text="Write", on_release=lambda *_: self._start("write")))
        mode_row.add_widget(Button(text="Multiple choice", on_release=lambda *_: self._start("mcq")))
        body.add_widget(mode_row)
        body.add_widget(Button(text="Back", size_hint_y=None, height=BUTTON_HEIGHT,
                               on_release=lambda *_: self.app.show_menu()))
        layout.add_widget(body)
        self.add_widget(layout)

    def _direction(self) -> str:
        return "reverse" if self.dir_reverse.state == "down" else "forward"

    def _levels(self) -> list[str]:
        return [level for level, btn in self.level_buttons.items() if btn.state == "down"]

    def _start(self, mode: str) -> None:
        self.app.start_training(self.dataset_spinner.text, self._levels(), self._direction(), mode)


class WriteScreen(Screen):
    def __init__(self, app, **kwargs):
        super().__init__(**kwargs)
        self.app = app
        layout = BoxLayout(orientation="vertical")
        layout.add_widget(TopBar(app, "Write"))
        body = BoxLayout(orientation="vertical", padding=16, spacing=10)
        self.prompt_label = Label(text="")
        body.add_widget(self.prompt_label)
        self.answer_input = _styled_text_input(multiline=False, size_hint_y=None, height=INPUT_HEIGHT)
        self.answer_input.bind(on_text_validate=lambda *_: self.submit())
        body.add_widget(self.answer_input)
        self.feedback_label = Label(text="", markup=True)
        body.add_widget(self.feedback_label)
        btn_row = BoxLayout(size_hint_y=None, height=BUTTON_HEIGHT, spacing=8)
        btn_row.add_widget(Button(text="Check", on_release=lambda *_: self.submit()))
        btn_row.add_widget(Button(text="Next", on_release=lambda *_: self.app.next_question()))
        btn_row.add_widget(Button(text="Stop", on_release=lambda *_: self.app.end_training()))
        body.add_widget(btn_row)
        layout.add_widget(body)
        self.add_widget(layout)

    def show_item(self, item: dict) -> None:
        self.prompt_label.text = item.get("prompt", "")
        self.answer_input.text = ""
        self.feedback_label.text = ""
        Clock.schedule_once(lambda *_: setattr(self.answer_input, "focus", True), 0)

    def submit(self) -> None:
        self.app.submit_written(self.answer_input.text)


class McqScreen(Screen):
    def __init__(self, app, **kwargs):
        super().__init__(**kwargs)
        self.app = app
        layout = BoxLayout(orientation="vertical")
        layout.add_widget(TopBar(app, "Multiple choice"))
        body = BoxLayout(orientation="vertical", padding=16, spacing=10)
        self.prompt_label = Label(text="")
        body.add_widget(self.prompt_label)
        self.options_box = BoxLayout(orientation="vertical", spacing=6)
        body.add_widget(self.options_box)
        self.feedback_label = Label(text="", markup=True, size_hint_y=None, height=40)
        body.add_widget(self.feedback_label)
        btn_row = BoxLayout(size_hint_y=None, height=BUTTON_HEIGHT, spacing=8)
        btn_row.add_widget(Button(text="Next", on_release=lambda *_: self.app.next_question()))
        btn_row.add_widget(Button(text="Stop", on_release=lambda *_: self.app.end_training()))
        body.add_widget(btn_row)
        layout.add_widget(body)
        self.add_widget(layout)

    def show_item(self, item: dict, options: list[str]) -> None:
        self.prompt_label.text = item.get("prompt", "")
        self.feedback_label.text = ""
        self.options_box.clear_widgets()
        for option in options:
            self.options_box.add_widget(Button(text=option, on_release=lambda btn: self.app.submit_choice(btn.text)))


class StatsScreen(Screen):
    def __init__(self, app, **kwargs):
        super().__init__(**kwargs)
        self.app = app
        layout = BoxLayout(orientation="vertical")
        layout.add_widget(TopBar(app, "Statistics"))
        body = BoxLayout(orientation="vertical", padding=16, spacing=10)
        keys = app.dataset_keys or [""]
        self.dataset_spinner = Spinner(text=keys[0], values=keys, size_hint_y=None, height=BUTTON_HEIGHT)
        self.dataset_spinner.bind(text=lambda *_: self.refresh())
        body.add_widget(self.dataset_spinner)
        self.summary_label = Label(text="")
        body.add_widget(self.summary_label)
        btn_row = BoxLayout(size_hint_y=None, height=BUTTON_HEIGHT, spacing=8)
        btn_row.add_widget(Button(text="Reset progress", on_release=lambda *_: self._confirm_reset()))
        btn_row.add_widget(Button(text="Back", on_release=lambda *_: self.app.show_menu()))
        body.add_widget(btn_row)
        layout.add_widget(body)
        self.add_widget(layout)

    def on_pre_enter(self, *args):
        self.refresh()

    def refresh(self) -> None:
        score = progress_store.load_score(self.app.store, self.dataset_spinner.text)
        self.summary_label.text = (
            f"Answered: {score['total']}\n"
            f"Correct: {score['correct']}\n"
            f"Accuracy: {progress_store.accuracy(score)}%"
        )

    def _confirm_reset(self) -> None:
        dataset_key = self.dataset_spinner.text
        box = BoxLayout(orientation="vertical", spacing=6, padding=8)
        box.add_widget(Label(text=f"Forget all progress for {dataset_key}?"))

        def do_reset(_):
            popup.dismiss()
            self.app.reset_progress(dataset_key)
            self.refresh()

        btn_row = BoxLayout(size_hint_y=None, height=BUTTON_HEIGHT, spacing=8)
        btn_row.add_widget(Button(text="Reset", on_release=do_reset))
        btn_row.add_widget(Button(text="Cancel", on_release=lambda *_: popup.dismiss()))
        box.add_widget(btn_row)
        popup = Popup(title="Reset progress", content=box, size_hint=(0.8, 0.4))
        popup.open()


class LinguaWriteApp(App):
    def build(self):
        self.title = "LinguaWrite"
        self._error_log = []
        self._last_exception = ""
        Button.font_size = BUTTON_FONT_SIZE
        ToggleButton.font_size = BUTTON_FONT_SIZE
        Spinner.font_size = SPINNER_FONT_SIZE
        Label.font_size = LABEL_FONT_SIZE
        Label.color = TEXT_COLOR
        Button.color = TEXT_COLOR
        Button.background_normal = ""
        Button.background_color = BUTTON_BG
        if IS_ANDROID:
            Window.softinput_mode = "resize"
        Window.clearcolor = SURFACE_BG

        self.data_dir = self.user_data_dir
        os.makedirs(self.data_dir, exist_ok=True)
        self.backup_dir = os.path.join(self.data_dir, "backups")
        os.makedirs(self.backup_dir, exist_ok=True)
        self.store = progress_store.JsonFileStore(os.path.join(self.data_dir, STORE_FILENAME))
        self.dataset_keys = datasets.available_datasets()
        self.rng = random.Random()

        self.session = None

        self.sm = ScreenManager()
        self.screen_menu = MenuScreen(self, name="menu")
        self.screen_setup = SetupScreen(self, name="setup")
        self.screen_write = WriteScreen(self, name="write")
        self.screen_mcq = McqScreen(self, name="mcq")
        self.screen_stats = StatsScreen(self, name="stats")
        for screen in (self.screen_menu, self.screen_setup, self.screen_write,
                       self.screen_mcq, self.screen_stats):
            self.sm.add_widget(screen)
        self.sm.current = "menu"
        return self.sm

    def _log_error(self, label: str, exc: Exception | None = None) -> None:
        msg = f"[{datetime.now().isoformat(timespec='seconds')}] {label}"
        if exc is not None:
            msg += f": {exc}"
        self._error_log.append(msg)
        if exc is not None:
            self._last_exception = traceback.format_exc()

    def show_menu(self) -> None:
        self.sm.current = "menu"

    def show_setup(self) -> None:
        self.sm.current = "setup"

    def show_stats(self) -> None:
        self.sm.current = "stats"

    def open_menu(self, *_):
        layout = BoxLayout(orientation="vertical", spacing=6, padding=10)
        layout.add_widget(Button(text="Export backup", size_hint_y=None, height=BUTTON_HEIGHT,
                                 on_release=lambda *_: self._export_backup_prompt()))
        layout.add_widget(Button(text="Import backup", size_hint_y=None, height=BUTTON_HEIGHT,
                                 on_release=lambda *_: self._import_backup_prompt()))
        layout.add_widget(Button(text="Debug report", size_hint_y=None, height=BUTTON_HEIGHT,
                                 on_release=lambda *_: self._show_debug_report()))
        layout.add_widget(Button(text="Close", size_hint_y=None, height=BUTTON_HEIGHT,
                                 on_release=lambda *_: popup.dismiss()))
        popup = Popup(title="Menu", content=layout, size_hint=(0.8, 0.6))
        popup.open()

    def start_training(self, dataset_key: str, levels: list[str], direction: str, mode: str) -> None:
        try:
            dataset = datasets.load_dataset(datasets.dataset_path(dataset_key))
        except Exception as exc:
            self._log_error(f"dataset load failed ({dataset_key})", exc)
            _info("Training", f"Could not load dataset {dataset_key}.")
            return
        entries = datasets.filter_by_level(dataset["entries"], levels)
        items = datasets.build_items(entries, direction, mode=mode)
        if not items:
            _info("Training", "No words match these levels.")
            return
        tracker = progress_store.PerformanceTracker(
            self.store,
            datasets.scope_key(dataset_key, direction, levels),
            on_error=self._log_error,
        )
        self.session = session.DrillSession(self.store, dataset_key, items, tracker,
                                            mode=mode, rng=self.rng, on_error=self._log_error)
        self.sm.current = mode
        self.next_question()

    def next_question(self) -> None:
        if self.session is None:
            return
        try:
            item = self.session.next_item()
        except training.NoItemsError as exc:
            self._log_error("no items to practise", exc)
            self.end_training()
            return
        if self.session.mode == "mcq":
            self.screen_mcq.show_item(item, self.session.options)
        else:
            self.screen_write.show_item(item)

    def submit_written(self, text: str) -> None:
        if self.session is None:
            return
        verdict = self.session.submit(text)
        if verdict is not None:
            self.screen_write.feedback_label.text = verdict["feedback"]

    def submit_choice(self, option: str) -> None:
        if self.session is None:
            return
        verdict = self.session.submit(option)
        if verdict is not None:
            self.screen_mcq.feedback_label.text = verdict["feedback"]

    def end_training(self) -> None:
        self.session = None
        self.sm.current = "menu"

    def reset_progress(self, dataset_key: str) -> None:
        prefix = progress_store.srs_key(f"{dataset_key}.")
        scopes = [key[len(progress_store.SRS_KEY_PREFIX):]
                  for key in self.store.keys() if key.startswith(prefix)]
        try:
            progress_store.reset_progress(self.store, dataset_key, scopes)
        except Exception as exc:
            self._log_error("progress reset failed", exc)
        if self.session is not None and self.session.dataset_key == dataset_key:
            self.session.tracker.clear()

    def _export_backup_prompt(self) -> None:
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        default_path = os.path.join(self.backup_dir, f"backup_{timestamp}{backup_io.BACKUP_EXT}")
        box = BoxLayout(orientation="vertical", spacing=6, padding=8)
        box.add_widget(Label(text="Export file path"))
        path_input = _styled_text_input(multiline=False, text=default_path)
        box.add_widget(path_input)

        def do_export(_):
            popup.dismiss()
            self._export_backup_to(backup_io.ensure_backup_extension(path_input.text.strip()))

        btn_row = BoxLayout(size_hint_y=None, height=BUTTON_HEIGHT, spacing=8)
        btn_row.add_widget(Button(text="Export", on_release=do_export))
        btn_row.add_widget(Button(text="Cancel", on_release=lambda *_: popup.dismiss()))
        box.add_widget(btn_row)
        popup = Popup(title="Export backup", content=box, size_hint=(0.9, 0.5))
        popup.open()

    def _export_backup_to(self, path: str) -> None:
        try:
            payload = backup_io.build_backup_payload(self.store)
            backup_io.persist_payload_to_file(path, payload)
            _info("Export backup", f"Saved:\n{path}", size_hint=(0.9, 0.4))
        except Exception as exc:
            self._log_error("backup export failed", exc)
            _info("Export backup", f"Error: {exc}", size_hint=(0.9, 0.4))

    def _import_backup_prompt(self) -> None:
        box = BoxLayout(orientation="vertical", spacing=6, padding=8)
        box.add_widget(Label(text="Backup file path"))
        path_input = _styled_text_input(multiline=False, text="")
        box.add_widget(path_input)

        def do_import(_):
            popup.dismiss()
            self._import_backup(path_input.text.strip())

        btn_row = BoxLayout(size_hint_y=None, height=BUTTON_HEIGHT, spacing=8)
        btn_row.add_widget(Button(text="Import", on_release=do_import))
        btn_row.add_widget(Button(text="Cancel", on_release=lambda *_: popup.dismiss()))
        box.add_widget(btn_row)
        popup = Popup(title="Import backup", content=box, size_hint=(0.9, 0.5))
        popup.open()

    def _import_backup(self, path: str) -> None:
        try:
            payload = backup_io.normalize_backup_payload(backup_io.load_payload_from_path(path))
            backup_io.restore_payload(self.store, payload)
            if self.session is not None:
                self.session.tracker.reload()
            scan = backup_io.scan_backup_payload(payload)
            _info("Import backup", f"Imported {scan['item_count']} words in {scan['scope_count']} sessions.",
                  size_hint=(0.8, 0.4))
        except Exception as exc:
            self._log_error("backup import failed", exc)
            _info("Import backup", f"Import error: {exc}", size_hint=(0.8, 0.4))

    def _show_debug_report(self) -> None:
        lines = ["LinguaWrite Debug Report", f"Version: {__version__}", f"Platform: {kivy_platform}"]
        if self._error_log:
            lines.append("Errors:")
            lines.extend(self._error_log)
        if self._last_exception:
            lines.append("\nLast exception:\n" + self._last_exception)
        box = BoxLayout(orientation="vertical", spacing=6, padding=6)
        box.add_widget(_styled_text_input(text="\n".join(lines), readonly=True))
        box.add_widget(Button(text="Close", size_hint_y=None, height=BUTTON_HEIGHT,
                              on_release=lambda *_: popup.dismiss()))
        popup = Popup(title="Debug report", content=box, size_hint=(0.95, 0.95))
        popup.open()


if __name__ == "__main__":
    LinguaWriteApp().run()
