"""
Input/Output Manager
Reads meshes (PyVista) and writes finished projection sets as a PNG archive
or an HDF5 file.
"""
from __future__ import annotations

import io
import logging
import os
import zipfile
from importlib.metadata import version, PackageNotFoundError
from typing import TYPE_CHECKING, Callable, Optional, Sequence

import h5py
import numpy as np
import pyvista as pv
from PIL import Image

from calprojector.errors import InvalidMeshError
from calprojector.model.geometry import Mesh, Projection, ProjectionSet

if TYPE_CHECKING:
    from calprojector.model.state import GenerationConfig

logger = logging.getLogger(__name__)

try:
    APP_VERSION = version("calprojector")
except PackageNotFoundError:
    APP_VERSION = "0.0.0-dev"

FRAME_NAME = "projection_{index:04d}.png"


class IOManager:

    # --- MESH INGESTION ---

    @staticmethod
    def mesh_from_polydata(poly: pv.PolyData) -> Mesh:
        """Triangulate a PyVista surface and convert it to a Mesh."""
        surface = poly.extract_surface().triangulate()
        vertices = np.asarray(surface.points, dtype=np.float64)
        if surface.n_cells == 0:
            return Mesh(vertices=vertices)
        # Flat VTK cell array: [3, a, b, c, 3, a, b, c, ...]
        triangles = np.asarray(surface.faces, dtype=np.int64).reshape(-1, 4)[:, 1:]
        return Mesh(vertices=vertices, triangles=triangles)

    @staticmethod
    def load_mesh(filepath: str) -> Mesh:
        """
        Read a triangle mesh (STL, OBJ, PLY, ...) from disk.

        Raises:
            FileNotFoundError: The file does not exist.
            InvalidMeshError: The file holds no surface geometry.
        """
        logger.info(f"Loading mesh from: {filepath}")
        if not os.path.exists(filepath):
            raise FileNotFoundError(f"Mesh file not found: {filepath}")

        data = pv.read(filepath)
        if isinstance(data, pv.MultiBlock):
            data = data.combine()
        if data.n_points == 0:
            raise InvalidMeshError(f"No geometry found in {filepath}")

        mesh = IOManager.mesh_from_polydata(data)
        logger.info(f"Loaded {mesh.num_vertices} vertices, {mesh.num_triangles} triangles.")
        return mesh

    # --- EXPORT ---

    @staticmethod
    def archive_name(config: GenerationConfig) -> str:
        """Default file name of the PNG archive for a run."""
        return f"cal_projections_{config.model}_{config.resolution}x{config.projection_count}.zip"

    @staticmethod
    def _require_normalized(projections: Sequence[Projection]) -> None:
        if not projections:
            raise ValueError("Nothing to export: the projection set is empty.")
        for projection in projections:
            if not projection.normalized:
                raise ValueError(f"Projection at {projection.angle} deg is not normalized.")

    @staticmethod
    def export_png_archive(
        projections: Sequence[Projection],
        filepath: str,
        progress: Optional[Callable[[float, str], None]] = None,
    ) -> None:
        """
        Write one grayscale PNG per projection into a ZIP archive.

        Frames are named ``projection_0000.png``, ... in angle order. Each
        frame is a single-channel 8-bit image holding the normalized
        intensities unchanged.
        """
        IOManager._require_normalized(projections)
        logger.info(f"Exporting {len(projections)} frames to: {filepath}")
        total = len(projections)

        with zipfile.ZipFile(filepath, "w", compression=zipfile.ZIP_DEFLATED, compresslevel=6) as zf:
            for i, projection in enumerate(projections):
                buffer = io.BytesIO()
                # uint8 2D input maps to mode "L"
                frame = Image.fromarray(np.ascontiguousarray(projection.data, dtype=np.uint8))
                frame.save(buffer, format="PNG")
                zf.writestr(FRAME_NAME.format(index=i), buffer.getvalue())
                if progress is not None:
                    progress((i + 1) / total, f"Zipping image {i + 1}/{total}")

        logger.info(f"Archive written to: {filepath}")

    @staticmethod
    def save_projection_set(
        projections: Sequence[Projection],
        filepath: str,
        config: Optional[GenerationConfig] = None,
    ) -> None:
        """Store a normalized projection set in an HDF5 file."""
        IOManager._require_normalized(projections)
        logger.info(f"Saving projection set to: {filepath}")
        try:
            with h5py.File(filepath, "w") as f:
                f.attrs["version"] = APP_VERSION
                if config is not None:
                    f.attrs["model"] = str(config.model)
                    f.attrs["resolution"] = config.resolution
                    f.attrs["projection_count"] = config.projection_count

                f.create_dataset("angles", data=np.array([p.angle for p in projections], dtype=np.float64))
                # Stack: (M, N, N)
                f.create_dataset(
                    "projections",
                    data=np.stack([p.data for p in projections]),
                    compression="gzip",
                )
        except Exception as e:
            logger.exception(f"Failed to save projection set: {e}")
            raise

    @staticmethod
    def load_projection_set(filepath: str) -> ProjectionSet:
        logger.info(f"Loading projection set from: {filepath}")
        if not h5py.is_hdf5(filepath):
            msg = f"File '{filepath}' is not a valid HDF5 file."
            logger.error(msg)
            raise ValueError(msg)

        with h5py.File(filepath, "r") as f:
            angles = f["angles"][()]
            frames = f["projections"][()]

        return [
            Projection(angle=float(angle), data=frame, normalized=True)
            for angle, frame in zip(angles, frames)
        ]
