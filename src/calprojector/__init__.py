"""
calprojector
============
Projection generation for Computed Axial Lithography: voxelize a part,
integrate it along rays for every vat rotation angle and normalize the
resulting image stack to 8-bit dose maps.
"""
