"""Command-line interface for celltype-concordance.

Provides CLI commands for running the concordance pipeline and its
reconciliation step.
"""

import logging
import sys
from pathlib import Path
from typing import Optional, Tuple

import click

from .. import __version__
from ..exceptions import ConcordanceError


def setup_logging(verbose: bool = False, debug: bool = False) -> logging.Logger:
    """Setup logging for CLI commands."""
    level = logging.DEBUG if debug else (logging.INFO if verbose else logging.WARNING)
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(levelname)s - %(message)s",
        datefmt="%H:%M:%S",
    )
    return logging.getLogger("celltype_concordance")


def _load_config(config: Optional[str]):
    from celltype_concordance.config import ConcordanceConfig

    if config:
        return ConcordanceConfig.from_yaml(Path(config))
    return ConcordanceConfig.default()


@click.group()
@click.version_option(version=__version__, prog_name="celltype-concordance")
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose output")
@click.option("--debug", is_flag=True, help="Enable debug output")
@click.pass_context
def cli(ctx: click.Context, verbose: bool, debug: bool) -> None:
    """celltype-concordance: published vs. reference-predicted cell types.

    Loads a 10x count matrix with published per-cell annotations,
    classifies the labeled cells against a reference panel and tabulates
    agreement between the two labelings.

    Examples:

        # Full run with SingleR and the configured classifier runs
        celltype-concordance run --matrix filtered_feature_bc_matrix/ \\
            --annotations annotations.csv --out results/

        # Replay precomputed predictions instead of running SingleR
        celltype-concordance run --matrix data/ --annotations ann.csv \\
            --predictions predicted.csv --run default

        # Check how annotation ids join to barcodes
        celltype-concordance reconcile --matrix data/ --annotations ann.csv

        # Show the rewrite of single identifiers
        celltype-concordance rewrite E13bm_AAACCTGAGAAGGCCT
    """
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["debug"] = debug
    ctx.obj["logger"] = setup_logging(verbose, debug)


@cli.command()
@click.option("--matrix", "-m", "matrix_path", required=True, type=click.Path(exists=True),
              help="10x matrix directory or .h5 file")
@click.option("--annotations", "-a", "annotation_path", required=True,
              type=click.Path(exists=True), help="Published annotation CSV")
@click.option("--config", "-c", type=click.Path(exists=True),
              help="Configuration file (YAML)")
@click.option("--out", "-o", "output_path", type=click.Path(),
              help="Output directory for tables, summary and logs")
@click.option("--predictions", "-p", type=click.Path(exists=True),
              help="CSV of precomputed predictions (cell_id, predicted_label)")
@click.option("--run", "runs", multiple=True,
              help="Classifier run to evaluate (repeatable; default: all configured)")
@click.pass_context
def run(
    ctx: click.Context,
    matrix_path: str,
    annotation_path: str,
    config: Optional[str],
    output_path: Optional[str],
    predictions: Optional[str],
    runs: Tuple[str, ...],
) -> None:
    """Run the full pipeline (Stages A-F).

    Stages:
      A: Ingestion and QC statistics
      B: Barcode reconciliation
      C: Label-presence filter
      D: Reference classification
      E: Coarse re-labeling
      F: Concordance tables
    """
    verbose = ctx.obj.get("verbose", False)
    debug = ctx.obj.get("debug", False)

    # Import here to avoid slow startup
    from celltype_concordance.core.classification import StaticPredictor
    from celltype_concordance.core.concordance import format_table
    from celltype_concordance.pipeline import ConcordancePipeline, PipelineLogger

    cfg = _load_config(config)
    known_runs = [r.name for r in cfg.classification.runs]
    unknown_runs = [name for name in runs if name not in known_runs]
    if unknown_runs:
        click.echo(
            f"Error: unknown classifier run(s) {unknown_runs} (known: {known_runs})", err=True
        )
        sys.exit(1)

    predictor = None
    if predictions:
        predictor = StaticPredictor.from_csv(predictions)

    log_dir = Path(output_path) / "logs" if output_path else None
    level = "DEBUG" if debug else ("INFO" if verbose else "WARNING")
    pipeline_logger = PipelineLogger(log_dir, log_level=level)
    pipeline_logger.setup()

    try:
        pipeline = ConcordancePipeline(cfg, predictor=predictor, logger=pipeline_logger)
        result = pipeline.run(
            matrix_path,
            annotation_path,
            out_dir=output_path,
            runs=list(runs) or None,
        )
    except ConcordanceError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    finally:
        pipeline_logger.close()

    click.echo(
        f"Cells: {result.qc.cells_total} loaded, {result.qc.cells_retained} with a published label"
    )
    for name, report in result.reports.items():
        click.echo("")
        click.echo(format_table(report.coarse, f"Run '{name}': coarse"))
        click.echo("")
        click.echo(format_table(report.fine, f"Run '{name}': fine"))
        click.echo(f"Coarse agreement: {report.agreement:.1%}")

    if output_path:
        click.echo(f"\nOutput saved to: {output_path}")


@cli.command()
@click.option("--matrix", "-m", "matrix_path", required=True, type=click.Path(exists=True),
              help="10x matrix directory or .h5 file")
@click.option("--annotations", "-a", "annotation_path", required=True,
              type=click.Path(exists=True), help="Published annotation CSV")
@click.option("--config", "-c", type=click.Path(exists=True),
              help="Configuration file (YAML)")
@click.pass_context
def reconcile(
    ctx: click.Context,
    matrix_path: str,
    annotation_path: str,
    config: Optional[str],
) -> None:
    """Join published annotations to matrix barcodes and report the result."""
    logger = ctx.obj["logger"]

    from celltype_concordance.core.ingest import DataLoader
    from celltype_concordance.core.reconciliation import BarcodeReconciler

    cfg = _load_config(config)
    loader = DataLoader(cfg.ingest, logger=logger)
    reconciler = BarcodeReconciler(
        cfg.reconciliation,
        id_col=cfg.ingest.annotation_id_col,
        label_col=cfg.ingest.annotation_label_col,
        logger=logger,
    )

    try:
        adata = loader.read_matrix(matrix_path)
        annotations = loader.load_annotations(annotation_path)
        result = reconciler.reconcile(adata.obs_names.astype(str).tolist(), annotations)
    except ConcordanceError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    for key, value in result.to_dict().items():
        click.echo(f"{key}: {value}")


@cli.command()
@click.argument("identifiers", nargs=-1, required=True)
@click.option("--marker", default=None, help="Marker preceding the barcode (default: from config)")
@click.option("--suffix", default=None, help="Suffix appended to the barcode (default: from config)")
@click.option("--config", "-c", type=click.Path(exists=True),
              help="Configuration file (YAML)")
def rewrite(
    identifiers: Tuple[str, ...],
    marker: Optional[str],
    suffix: Optional[str],
    config: Optional[str],
) -> None:
    """Print the cell id each annotation identifier rewrites to.

    Output is tab-separated: original, rewritten, and "matched" or
    "unchanged".
    """
    from celltype_concordance.core.reconciliation import RewriteRule, rewrite_identifier

    rule = RewriteRule.from_config(_load_config(config).reconciliation)
    if marker is not None or suffix is not None:
        rule = RewriteRule(
            marker=rule.marker if marker is None else marker,
            suffix=rule.suffix if suffix is None else suffix,
        )

    for identifier in identifiers:
        result = rewrite_identifier(identifier, rule)
        status = "matched" if result.matched else "unchanged"
        click.echo(f"{result.original}\t{result.cell_id}\t{status}")


def main() -> None:
    """Main entry point for CLI."""
    cli(obj={})


if __name__ == "__main__":
    main()
