"""
Projection Engine
=================
The core implementation of projection generation.

Why is this file needed?
------------------------
1. Geometry: It turns primitives and meshes into occupancy grids.
2. Physics: It integrates the volume along rays for every rotation angle.
3. Orchestration: It runs the angle loop, normalizes the result and reports
   progress to whoever hosts the run.

Note: Only workers.py may import PySide6.
"""
