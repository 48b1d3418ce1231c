"""
#### Provide objects for the residue coordinates of a structure and the alignments of a structure to itself

* [Coords][structure.coords.Coords] hold the read-only residue positions of a single chain.
* A [SimilarityMatrix][structure.matrix.SimilarityMatrix] scores the chain against itself duplicated end to end and
 tracks which cells are masked.
* A [SelfAlignment][structure.alignment.SelfAlignment] relates residues of the chain to other residues of the chain.
* A [MultipleAlignment][structure.alignment.MultipleAlignment] holds the equivalent residues of each subunit.
"""
