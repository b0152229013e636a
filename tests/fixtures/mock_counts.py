"""Synthetic 10x count data for testing.

Provides functions to create small count matrices, published annotation
tables and 10x matrix directories without requiring real data.
"""

import gzip
import shutil
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from scipy import io as sio
from scipy import sparse

MITO_GENES = ["mt-Co1", "mt-Co2", "mt-Nd1", "mt-Atp6"]
RARE_GENE = "Rare1"

# Published label per cell index; cells not listed stay unlabeled
SAMPLE_PUBLISHED = {
    0: "MTCs",
    1: "MTCs",
    2: "MTCs",
    3: "MTCs",
    4: "Fibroblasts",
    5: "Fibroblasts",
    6: "Endothelial",
    7: "Macrophages",
}

# Reference prediction per labeled cell index; None is a no-call
SAMPLE_PREDICTED = {
    0: "Melanocytes",
    1: "Melanocytes",
    2: None,
    3: "Fibroblasts",
    4: "Fibroblasts",
    5: "Melanocytes",
    6: "Endothelial cells",
    7: None,
}


def make_barcodes(n: int, length: int = 16) -> List[str]:
    """Deterministic, unique nucleotide barcodes (base-4 counting)."""
    alphabet = "ACGT"
    barcodes = []
    for i in range(n):
        digits = []
        value = i
        for _ in range(length):
            digits.append(alphabet[value % 4])
            value //= 4
        barcodes.append("".join(reversed(digits)))
    return barcodes


def create_count_adata(
    n_cells: int = 12,
    n_genes: int = 20,
    n_mito: int = 2,
    suffix: str = "-1",
    include_rare_gene: bool = True,
    seed: int = 42,
) -> "AnnData":
    """Create a raw-count AnnData shaped like a 10x import.

    Every regular and mitochondrial gene is detected in every cell. The
    optional rare gene is detected in two cells only, so the default
    min-cells gene filter removes it.

    Parameters
    ----------
    n_cells : int
        Number of cells
    n_genes : int
        Number of non-mitochondrial genes
    n_mito : int
        Number of ``mt-`` genes (at most 4)
    suffix : str
        Sample suffix appended to each barcode
    include_rare_gene : bool
        Add a gene detected in only two cells
    seed : int
        Random seed for reproducibility

    Returns
    -------
    AnnData
        Cells x genes sparse integer counts
    """
    import anndata as ad

    rng = np.random.default_rng(seed)
    gene_names = [f"Gene{i}" for i in range(n_genes)] + MITO_GENES[:n_mito]
    X = rng.poisson(lam=4, size=(n_cells, len(gene_names))) + 1

    if include_rare_gene:
        rare = np.zeros((n_cells, 1), dtype=X.dtype)
        rare[: min(2, n_cells), 0] = 3
        X = np.hstack([X, rare])
        gene_names.append(RARE_GENE)

    obs = pd.DataFrame(index=[f"{bc}{suffix}" for bc in make_barcodes(n_cells)])
    var = pd.DataFrame(
        {"gene_ids": [f"ENSMUSG{i:011d}" for i in range(len(gene_names))]},
        index=gene_names,
    )
    return ad.AnnData(X=sparse.csr_matrix(X.astype(np.float32)), obs=obs, var=var)


def create_annotation_frame(
    cell_ids: Sequence[str],
    labels: Sequence[str],
    prefix: str = "1_E13bm_",
    suffix: str = "-1",
    extra_rows: Optional[List[Tuple[str, str]]] = None,
    id_col: str = "orig_row_names",
    label_col: str = "Cell_Type",
) -> pd.DataFrame:
    """Create a published annotation table for matrix cells.

    Identifiers are written the way the publication does: ``prefix``
    followed by the bare barcode.

    Parameters
    ----------
    cell_ids : Sequence[str]
        Matrix cell ids (``<barcode><suffix>``)
    labels : Sequence[str]
        Published label per cell id
    prefix : str
        Publication prefix, ending in the reconciliation marker
    suffix : str
        Sample suffix to strip from the cell ids
    extra_rows : List[Tuple[str, str]], optional
        Raw (identifier, label) rows appended as is

    Returns
    -------
    pd.DataFrame
        ``id_col`` and ``label_col`` columns in input order
    """
    identifiers = []
    for cell_id in cell_ids:
        barcode = cell_id[: -len(suffix)] if suffix and cell_id.endswith(suffix) else cell_id
        identifiers.append(f"{prefix}{barcode}")
    rows = list(zip(identifiers, labels))
    rows.extend(extra_rows or [])
    return pd.DataFrame(rows, columns=[id_col, label_col])


def create_sample(
    n_cells: int = 12,
    seed: int = 42,
) -> Tuple["AnnData", pd.DataFrame, Dict[str, Optional[str]]]:
    """Create a labeled sample with precomputed predictions.

    Cells 0-7 carry a published label; the remaining cells are
    unlabeled. The annotation table also holds a row for a barcode absent
    from the matrix, an identifier without the marker, and an earlier
    conflicting row for cell 7 that the later row overrides.

    Returns
    -------
    Tuple[AnnData, pd.DataFrame, Dict[str, Optional[str]]]
        Counts, annotation table, and predicted label per labeled cell id
    """
    adata = create_count_adata(n_cells=n_cells, seed=seed)
    cell_ids = adata.obs_names.tolist()

    labeled = sorted(SAMPLE_PUBLISHED)
    stale_row = (f"1_E13bm_{cell_ids[7][:-2]}", "Neutrophils")
    annotations = create_annotation_frame(
        [cell_ids[i] for i in labeled[:7]],
        [SAMPLE_PUBLISHED[i] for i in labeled[:7]],
        extra_rows=[
            stale_row,
            ("1_E13bm_TTTTTTTTTTTTTTTT", "MTCs"),
            ("unprefixed_GGGGGGGGGGGGGGGG", "B cells"),
            (f"1_E13bm_{cell_ids[7][:-2]}", SAMPLE_PUBLISHED[7]),
        ],
    )
    predictions = {cell_ids[i]: label for i, label in SAMPLE_PREDICTED.items()}
    return adata, annotations, predictions


def write_10x_mtx(adata, directory: Path, suffix: str = "-1") -> Path:
    """Write an AnnData as a Cell Ranger v3 matrix directory.

    Creates ``matrix.mtx.gz`` (genes x cells), ``features.tsv.gz`` and
    ``barcodes.tsv.gz``.
    """
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)

    X = adata.X if sparse.issparse(adata.X) else sparse.csr_matrix(adata.X)
    counts = sparse.coo_matrix(X.T).astype(np.int64)

    plain = directory / "matrix.mtx"
    sio.mmwrite(str(plain), counts)
    with open(plain, "rb") as src, gzip.open(directory / "matrix.mtx.gz", "wb") as dst:
        shutil.copyfileobj(src, dst)
    plain.unlink()

    gene_ids = (
        adata.var["gene_ids"].tolist()
        if "gene_ids" in adata.var.columns
        else [f"GENE{i:08d}" for i in range(adata.n_vars)]
    )
    with gzip.open(directory / "features.tsv.gz", "wt") as f:
        for gene_id, symbol in zip(gene_ids, adata.var_names):
            f.write(f"{gene_id}\t{symbol}\tGene Expression\n")

    with gzip.open(directory / "barcodes.tsv.gz", "wt") as f:
        for cell_id in adata.obs_names:
            f.write(f"{cell_id}\n")

    return directory
