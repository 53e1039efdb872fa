"""
Background Workers (Threading)
==============================
This module contains QThread subclasses for handling long-running tasks.

Why is this file needed?
------------------------
1. Responsiveness: Generating hundreds of projections on the main thread
   would freeze a GUI. These classes push the work to a background thread.
2. Signals: They provide a safe way to update the GUI (progress bars, status
   text, errors) from the background using Qt Signals.
3. Cooperation: At every pipeline checkpoint the worker yields its time slice
   and checks whether it was asked to stop.

Classes:
    GenerationWorker: Runs the generation pipeline.
    ExportWorker: Writes a finished projection set to a PNG archive.
"""
import logging
from typing import Optional

from PySide6.QtCore import QThread, Signal

from calprojector.controller.pipeline import iter_generation, result_of
from calprojector.controller.substrate import ComputeSubstrate
from calprojector.errors import CALProjectorError, ComputeSubstrateError
from calprojector.model.geometry import ProjectionSet
from calprojector.model.io import IOManager
from calprojector.model.state import GenerationConfig, VolumeSource

logger = logging.getLogger(__name__)


def user_message(error: Exception) -> str:
    """Text shown to the user for a failed run."""
    if isinstance(error, ComputeSubstrateError):
        return error.user_message
    return str(error)


class GenerationWorker(QThread):
    # Signals to update the UI from the background
    progress_updated = Signal(int, str)  # e.g., (42, "Processing angle 76/180")
    completed = Signal(object)  # ProjectionSet
    error_occurred = Signal(str)
    cancelled = Signal()

    def __init__(
        self,
        config: GenerationConfig,
        source: Optional[VolumeSource] = None,
        substrate: Optional[ComputeSubstrate] = None,
    ):
        super().__init__()
        self.config = config
        self.source = source
        self.substrate = substrate
        self.is_running = True

    def _on_progress(self, fraction: float, message: str) -> None:
        self.progress_updated.emit(int(round(fraction * 100)), message)

    def run(self):
        try:
            logger.info("Starting generation in background thread...")
            self.progress_updated.emit(0, "Building volume...")

            generation = iter_generation(
                self.config,
                source=self.source,
                substrate=self.substrate,
                progress=self._on_progress,
            )
            state = None
            for state in generation:
                if state.is_terminal:
                    break
                if not self.is_running:
                    generation.close()
                    logger.info(f"Generation stopped after {state.index} angles.")
                    self.cancelled.emit()
                    return
                self.yieldCurrentThread()

            projections = result_of(state)
            self.completed.emit(projections)

        except CALProjectorError as e:
            logger.error(f"Error in GenerationWorker: {e}")
            self.error_occurred.emit(user_message(e))
        except Exception as e:
            logger.exception(f"Unexpected error in GenerationWorker: {e}")
            self.error_occurred.emit(str(e))

    def stop(self) -> None:
        """Ask the run to end at its next checkpoint."""
        self.is_running = False


class ExportWorker(QThread):
    progress_updated = Signal(int, str)
    completed = Signal(str)  # archive path
    error_occurred = Signal(str)

    def __init__(self, projections: ProjectionSet, filepath: str):
        super().__init__()
        self.projections = projections
        self.filepath = filepath

    def _on_progress(self, fraction: float, message: str) -> None:
        self.progress_updated.emit(int(round(fraction * 100)), message)

    def run(self):
        try:
            IOManager.export_png_archive(self.projections, self.filepath, progress=self._on_progress)
            self.completed.emit(self.filepath)
        except (OSError, ValueError) as e:
            logger.error(f"Error in ExportWorker: {e}")
            self.error_occurred.emit(str(e))
