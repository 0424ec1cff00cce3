"""Offline orchestration: correct the direction of an HTML file end to end."""

from __future__ import annotations

import pathlib
import time
from dataclasses import dataclass, field
from typing import List, Optional

from .engine import Engine
from .errors import OverwriteRefusedError, RtlFlowError
from .markup import complete_loading, load_html, serialise
from .protocol import CommandHandler, EngineController, SettingsSync
from .scheduler import ManualHost
from .settings import SettingsStore
from .structures import EngineConfig, Stats


@dataclass
class RunSummary:
    """Report returned after processing a document."""

    input_path: pathlib.Path
    output_path: pathlib.Path | None
    enabled: bool
    stats: Stats
    frame_stats: Stats
    total_elements: int
    embedded_documents: int
    slices: int
    frames: int
    total_errors: int
    elapsed_seconds: float
    error_messages: List[str] = field(default_factory=list)


class DocumentRunner:
    """Loads a document, lets the engine settle on a virtual clock, writes it out."""

    def __init__(
        self,
        *,
        input_path: pathlib.Path,
        output_path: pathlib.Path | None,
        config: EngineConfig,
        settings_store: Optional[SettingsStore] = None,
    ) -> None:
        self.input_path = input_path
        self.output_path = output_path
        self.config = config
        self.settings_store = settings_store

    def run(self) -> RunSummary:
        start_time = time.time()

        host = ManualHost()
        try:
            document = load_html(self.input_path, host=host)
        except (OSError, UnicodeDecodeError) as exc:
            raise RtlFlowError(f"Could not read {self.input_path}: {exc}") from exc

        controller = EngineController(lambda: Engine(document, host, self.config))
        handler = CommandHandler(controller)
        if self.settings_store is not None:
            sync = SettingsSync(self.settings_store, controller)
            sync.start()
        else:
            handler.handle({"action": "enable"})

        complete_loading(document)
        host.run_until_idle()

        if self.output_path is not None:
            self.output_path.write_text(serialise(document), encoding="utf-8")

        engine = controller.engine
        records = list(handler.policy.records)
        if engine is not None:
            records.extend(engine.policy.records)
            for child in engine.children:
                records.extend(child.policy.records)

        return RunSummary(
            input_path=self.input_path,
            output_path=self.output_path,
            enabled=engine is not None and engine.enabled,
            stats=engine.get_stats() if engine is not None else Stats(),
            frame_stats=(
                engine.get_stats(include_frames=True) if engine is not None else Stats()
            ),
            total_elements=sum(1 for _ in document.iter_elements()),
            embedded_documents=len(engine.children) if engine is not None else 0,
            slices=engine.scheduler.slices_run if engine is not None else 0,
            frames=host.frames,
            total_errors=len(records),
            elapsed_seconds=time.time() - start_time,
            error_messages=[record.message for record in records],
        )


def validate_paths(
    input_path: pathlib.Path,
    output_path: pathlib.Path | None,
    force_overwrite: bool,
) -> None:
    """Validate input/output path combinations and overwrite policy."""

    if not input_path.exists():
        raise FileNotFoundError("Input file not found. Please provide a readable HTML file.")
    if not input_path.is_file():
        raise RtlFlowError("Input path must be a file.")
    if output_path is None:
        return

    if input_path.resolve() == output_path.resolve():
        raise OverwriteRefusedError(
            "The output path matches the input document. Refusing to overwrite the source file."
        )

    if output_path.exists() and not force_overwrite:
        raise OverwriteRefusedError(
            "The output file already exists. Rename it or use the overwrite flag."
        )
