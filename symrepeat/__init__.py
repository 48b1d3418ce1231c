"""
#### Detect internal structural symmetry of protein chains from their residue coordinates.

Modules exported by this package:

- [flags][]: Setup program inputs to perform a job
- [metrics][]: Score residue correspondences and multiple alignments
- [protocols][]: Implement the symmetry analysis, from self-alignment through refinement, hierarchy, and optimization
- [resources][]: Constants and job parameters which connect program inputs to the protocols
- [structure][]: Handle residue coordinates, similarity matrices, and alignments as python objects
- [utils][]: Miscellaneous functions, methods, and tools for all modules
"""
from .version import version, __version__
