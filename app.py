from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path
from typing import Optional

import flet as ft
import flet_audio as fta
import flet_video as ftv

from reelcut.config import ConfigStore
from reelcut.events import Event
from reelcut.handles import HandleRegistry
from reelcut.library import ingest_file
from reelcut.media import FFmpegNotFound, resolve_ffmpeg_bins
from reelcut.model import KIND_AUDIO, KIND_TEXT, TRACK_AUDIO, TRACK_KINDS, TRACK_MAIN, TRACK_TEXT, Clip
from reelcut.persistence import AutoSaver, ProjectPersistence
from reelcut.state import EditorState
from reelcut.storage import PendingUploads, ProjectStore, StorageError

logging.basicConfig(level=logging.INFO)
log = logging.getLogger("reelcut")

LANE_LABELS = {TRACK_MAIN: "Video", TRACK_AUDIO: "Audio", TRACK_TEXT: "Text"}
LANE_COLORS = {TRACK_MAIN: ft.Colors.BLUE_GREY_700, TRACK_AUDIO: ft.Colors.TEAL_800, TRACK_TEXT: ft.Colors.PURPLE_800}
IMPORT_EXTS = ["mp4", "mov", "m4v", "webm", "mkv", "mp3", "wav", "flac", "aac", "ogg", "m4a", "png", "jpg", "jpeg", "webp"]


def _fmt_time(sec: float) -> str:
    sec = max(0.0, float(sec))
    m = int(sec // 60)
    s = sec - m * 60
    return f"{m:02d}:{s:05.2f}"


class AppState:
    def __init__(self) -> None:
        self.selected_clip_id: Optional[str] = None
        self.px_per_sec: float = 60.0  # timeline zoom
        self.busy_imports: int = 0


def main(page: ft.Page) -> None:
    page.title = "ReelCut"
    page.theme_mode = ft.ThemeMode.DARK
    page.padding = 10

    root = Path(__file__).resolve().parent
    cfg = ConfigStore.default()
    ui = AppState()
    registry = HandleRegistry()
    editor = EditorState()
    store = ProjectStore(cfg.store_dir())
    persistence = ProjectPersistence(editor, store, registry=registry)
    pending = PendingUploads(ProjectStore(cfg.store_dir() / "pending"))
    preview_video: Optional[ftv.Video] = None

    def _log_event(ev: Event) -> None:
        log.info("event %s", ev.to_dict())

    editor.events.subscribe(_log_event)

    # ---------- helpers ----------
    def snack(msg: str) -> None:
        page.show_dialog(ft.SnackBar(ft.Text(msg)))

    def get_bins() -> Optional[tuple[str, str]]:
        try:
            return resolve_ffmpeg_bins(root, cfg.ffmpeg_dir())
        except FFmpegNotFound as e:
            snack(str(e))
            return None

    def _selected_clip() -> Optional[Clip]:
        if not ui.selected_clip_id:
            return None
        return editor.find_clip(ui.selected_clip_id)

    def _on_save_error(ex: Exception) -> None:
        snack(f"Auto-save failed: {ex}")

    autosaver = AutoSaver(
        persistence,
        interval_sec=cfg.auto_save_interval_sec(),
        debounce_sec=cfg.auto_save_debounce_sec(),
        on_error=_on_save_error,
    )

    # ---------- media bin ----------
    media_list = ft.ListView(expand=True, spacing=4, auto_scroll=False)
    import_status = ft.Text("", size=11, color=ft.Colors.WHITE70)

    def refresh_media() -> None:
        media_list.controls.clear()
        for it in editor.library.get():
            icon = ft.Icons.AUDIOTRACK if it.kind == KIND_AUDIO else ft.Icons.MOVIE
            dur = _fmt_time(it.duration) if it.duration else "-"
            media_list.controls.append(
                ft.Container(
                    padding=8,
                    border_radius=8,
                    bgcolor=ft.Colors.BLUE_GREY_800,
                    content=ft.Row(
                        [
                            ft.Icon(icon),
                            ft.Text(it.name, expand=True, no_wrap=True),
                            ft.Text(dur),
                            ft.IconButton(
                                ft.Icons.ADD,
                                tooltip="Add to timeline",
                                on_click=lambda _e, it=it: add_to_timeline(it),
                            ),
                        ],
                        tight=True,
                    ),
                )
            )
        import_status.value = f"Importing {ui.busy_imports} file(s)..." if ui.busy_imports else ""
        page.update()

    def add_to_timeline(item) -> None:
        res = editor.place_clip(item)
        if res.ok:
            ui.selected_clip_id = res.clip_id
        snack(res.message)

    async def _import_paths(paths: list[str]) -> None:
        bins = get_bins()
        if not bins:
            return
        ffmpeg, ffprobe = bins
        opts = cfg.thumbnail_options()
        for path in paths:
            ui.busy_imports += 1
            refresh_media()
            try:
                item = await ingest_file(path, ffmpeg_path=ffmpeg, ffprobe_path=ffprobe, registry=registry, options=opts)
            except OSError as ex:
                log.exception("import failed: %s", ex)
                item = None
            finally:
                ui.busy_imports -= 1
            if item is None:
                snack(f"Unsupported or unreadable: {Path(path).name}")
            else:
                editor.add_media(item)
        refresh_media()

    file_picker = ft.FilePicker()

    def import_click(_e):
        async def _pick() -> None:
            picked = await file_picker.pick_files(
                allow_multiple=True,
                initial_directory=cfg.last_import_dir() or None,
                file_type=ft.FilePickerFileType.CUSTOM,
                allowed_extensions=IMPORT_EXTS,
            )
            if not picked:
                return
            paths = [f.path for f in picked if f.path]
            if paths:
                cfg.set_last_import_dir(paths[0])
                await _import_paths(paths)

        page.run_task(_pick)

    def on_file_drop(e) -> None:
        files = getattr(e, "files", None) or []
        paths = [f.path for f in files if getattr(f, "path", None)]
        if paths:
            page.run_task(_import_paths, paths)

    # Best-effort: Flet desktop supports dropping files from OS.
    page.on_drop = on_file_drop

    # ---------- preview / inspector ----------
    audio_preview_enabled = os.environ.get("REELCUT_AUDIO_PREVIEW", "0") == "1"
    audio = None
    if audio_preview_enabled:
        audio = fta.Audio(volume=1.0)
        page.overlay.append(audio)

    selected_title = ft.Text("No clip selected", weight=ft.FontWeight.BOLD)
    selected_range = ft.Text("")
    split_label = ft.Text("Split: -")
    split_slider = ft.Slider(min=0, max=1, value=0.5, divisions=200)
    preview_slot = ft.Container(expand=True, bgcolor=ft.Colors.BLACK, border_radius=8)

    def _play_audio(_e=None) -> None:
        clip = _selected_clip()
        if audio is None or clip is None or clip.kind != KIND_AUDIO or clip.media is None:
            snack("Select an audio clip (set REELCUT_AUDIO_PREVIEW=1 to enable)")
            return
        src = clip.media.handle or clip.media.regenerate(registry)
        if audio.src != src:
            audio.src = src
            audio.update()
        start_ms = int(clip.media_start_offset * 1000)

        async def _do() -> None:
            try:
                await audio.seek(start_ms)
                await audio.play()
            except Exception:
                log.exception("audio preview failed")

        page.run_task(_do)

    def on_split_slider(_e) -> None:
        clip = _selected_clip()
        if clip is None:
            return
        split_label.value = f"Split: {_fmt_time(clip.start_offset + float(split_slider.value))}"
        page.update()

    split_slider.on_change = on_split_slider

    def update_inspector() -> None:
        nonlocal preview_video
        clip = _selected_clip()
        if clip is None:
            selected_title.value = "No clip selected"
            selected_range.value = ""
            split_label.value = "Split: -"
            split_slider.disabled = True
            preview_slot.content = None
            page.update()
            return

        selected_title.value = clip.name or clip.kind
        selected_range.value = (
            f"{_fmt_time(clip.start_offset)} - {_fmt_time(clip.end)}  "
            f"(source {_fmt_time(clip.media_start_offset)})"
        )
        split_slider.disabled = False
        split_slider.max = max(0.01, clip.duration)
        split_slider.value = clip.duration / 2.0
        split_label.value = f"Split: {_fmt_time(clip.start_offset + clip.duration / 2.0)}"

        if clip.kind == KIND_TEXT and clip.style is not None:
            preview_slot.content = ft.Container(
                alignment=ft.Alignment(0, 0),
                content=ft.Text(clip.style.text, size=min(48, clip.style.font_size), color=clip.style.color),
            )
        elif clip.media is not None and clip.kind != KIND_AUDIO:
            src = clip.media.handle or clip.media.regenerate(registry)
            if clip.kind == "image":
                preview_slot.content = ft.Image(src=src, fit=ft.ImageFit.CONTAIN)
            else:
                if preview_video is None:
                    preview_video = ftv.Video(
                        expand=True,
                        playlist=[ftv.VideoMedia(src)],
                        autoplay=False,
                        muted=True,
                        show_controls=True,
                    )
                else:
                    preview_video.playlist = [ftv.VideoMedia(src)]
                preview_slot.content = preview_video
        else:
            preview_slot.content = None
        page.update()

    # ---------- timeline ----------
    timeline_col = ft.Column(spacing=6, scroll=ft.ScrollMode.AUTO)

    def clip_block(kind: str, clip: Clip) -> ft.Control:
        width = max(6.0, clip.duration * ui.px_per_sec)
        selected = clip.id == ui.selected_clip_id
        if clip.thumbnails and clip.thumbnails[0].handle:
            body: ft.Control = ft.Image(src=clip.thumbnails[0].handle, width=width, height=48, fit=ft.ImageFit.COVER)
        else:
            label = clip.style.text if clip.style is not None else clip.name
            body = ft.Text(label, size=11, no_wrap=True)

        def _select(_e, cid=clip.id) -> None:
            ui.selected_clip_id = cid
            update_inspector()
            refresh_timeline()

        return ft.Container(
            left=clip.start_offset * ui.px_per_sec,
            top=0,
            width=width,
            height=48,
            border_radius=6,
            bgcolor=LANE_COLORS[kind],
            border=ft.Border.all(2, ft.Colors.AMBER_400 if selected else ft.Colors.TRANSPARENT),
            content=body,
            tooltip=f"{clip.name}\n{_fmt_time(clip.start_offset)} - {_fmt_time(clip.end)}",
            on_click=_select,
        )

    def refresh_timeline() -> None:
        timeline_col.controls.clear()
        total = max(10.0, editor.timeline_duration() + 5.0)
        for kind in TRACK_KINDS:
            lane = ft.Stack(
                [clip_block(kind, c) for c in editor.clips(kind)],
                width=total * ui.px_per_sec,
                height=52,
            )
            timeline_col.controls.append(
                ft.Row(
                    [
                        ft.Container(width=70, content=ft.Text(LANE_LABELS[kind], size=12)),
                        ft.Row([lane], scroll=ft.ScrollMode.AUTO, expand=True),
                    ]
                )
            )
        page.update()

    def on_zoom(e: ft.ControlEvent) -> None:
        ui.px_per_sec = float(e.control.value)
        refresh_timeline()

    timeline_zoom = ft.Slider(min=20, max=180, value=ui.px_per_sec, divisions=160, on_change=on_zoom)

    # ---------- actions ----------
    def split_click(_e):
        clip = _selected_clip()
        if clip is None:
            snack("Select a clip first")
            return
        res = editor.split_clip(clip.id, clip.start_offset + float(split_slider.value))
        if res.ok:
            ui.selected_clip_id = res.clip_id
            update_inspector()
        snack(res.message)

    def delete_click(_e):
        if not ui.selected_clip_id:
            snack("Select a clip first")
            return
        res = editor.delete_clip(ui.selected_clip_id)
        ui.selected_clip_id = None
        update_inspector()
        snack(res.message)

    def add_text_click(_e):
        res = editor.add_text_clip()
        ui.selected_clip_id = res.clip_id
        update_inspector()

    def save_click(_e):
        async def _do() -> None:
            try:
                await persistence.save()
                autosaver.discard()
                snack("Saved")
            except (OSError, StorageError) as ex:
                snack(f"Save failed: {ex}")

        page.run_task(_do)

    def new_project_click(_e):
        async def _do() -> None:
            try:
                await persistence.clear()
            except (OSError, StorageError) as ex:
                snack(f"Reset failed: {ex}")
                return
            autosaver.discard()
            ui.selected_clip_id = None
            update_inspector()
            refresh_media()
            snack("New project")

        page.run_task(_do)

    # Any committed edit redraws the timeline.
    editor.subscribe(lambda: refresh_timeline())

    # ---------- layout ----------
    toolbar = ft.Row(
        [
            ft.ElevatedButton("Import", icon=ft.Icons.UPLOAD_FILE, on_click=import_click),
            ft.ElevatedButton("Split", icon=ft.Icons.CONTENT_CUT, on_click=split_click),
            ft.OutlinedButton("Delete", icon=ft.Icons.DELETE, on_click=delete_click),
            ft.OutlinedButton("Text", icon=ft.Icons.TEXT_FIELDS, on_click=add_text_click),
            ft.OutlinedButton("Save", icon=ft.Icons.SAVE, on_click=save_click),
            ft.OutlinedButton("New", icon=ft.Icons.NOTE_ADD, on_click=new_project_click),
        ],
        alignment=ft.MainAxisAlignment.START,
    )
    left_panel = ft.Container(
        width=330,
        padding=10,
        border_radius=12,
        bgcolor=ft.Colors.BLUE_GREY_900,
        content=ft.Column([ft.Text("Media", weight=ft.FontWeight.BOLD), import_status, media_list], expand=True),
    )
    right_panel = ft.Container(
        expand=True,
        padding=10,
        border_radius=12,
        bgcolor=ft.Colors.BLUE_GREY_900,
        content=ft.Column(
            [
                selected_title,
                selected_range,
                preview_slot,
                split_label,
                split_slider,
                ft.IconButton(ft.Icons.PLAY_ARROW, tooltip="Play audio clip", on_click=_play_audio),
            ],
            expand=True,
        ),
    )
    timeline = ft.Container(
        height=230,
        padding=10,
        border_radius=12,
        bgcolor=ft.Colors.BLUE_GREY_900,
        content=ft.Column([ft.Row([ft.Text("Zoom"), timeline_zoom]), timeline_col]),
    )
    page.add(ft.Column([toolbar, ft.Row([left_panel, right_panel], expand=True), timeline], expand=True, spacing=10))

    # ---------- startup ----------
    async def _startup() -> None:
        try:
            restored = await persistence.load()
        except (OSError, StorageError) as ex:
            log.exception("restore failed: %s", ex)
            snack(f"Could not restore the last project: {ex}")
            restored = False
        if restored:
            snack("Project restored")
        refresh_media()
        refresh_timeline()

        try:
            handed = await pending.take()
        except (OSError, StorageError):
            log.exception("pending upload unreadable")
            handed = None
        if handed is not None and handed.name:
            tmp = Path(registry.handle_for(handed.data, name=handed.name, mime=handed.mime))
            target = tmp.with_name(Path(handed.name).name)
            await asyncio.to_thread(target.write_bytes, handed.data)
            await _import_paths([str(target)])

        autosaver.start()

    page.run_task(_startup)


if __name__ == "__main__":
    ft.app(target=main)
