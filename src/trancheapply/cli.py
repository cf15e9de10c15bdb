from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Optional

from . import __version__
from .apply import apply_vcf
from .plotting import plot_tranche_counts, plot_vqslod_hist
from .report import render_report
from .toy_data import make_toy_data
from .tranches import filter_descriptions, is_reachable, load_threshold_table
from .utils import ensure_outdir
from .validation import check_vcf_index


def _setup_logging(verbosity: int, *, logfile: Optional[Path] = None) -> None:
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG

    log_fmt = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    logging.basicConfig(level=level, format=log_fmt, stream=sys.stderr)

    if logfile is not None:
        logfile.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(logfile)
        fh.setLevel(level)
        fh.setFormatter(logging.Formatter(log_fmt))
        logging.getLogger().addHandler(fh)


def _path_exists(p: str) -> str:
    if not Path(p).exists():
        raise argparse.ArgumentTypeError(f"Path does not exist: {p}")
    return p


def _non_negative_int(s: str) -> int:
    v = int(s)
    if v < 0:
        raise argparse.ArgumentTypeError(f"Expected a non-negative integer, got {s}")
    return v


def _log_path(outdir: Path, name: str) -> Path:
    return outdir / "logs" / name


def _handle_error(err: Exception, *, log_path: Optional[Path] = None) -> int:
    msg = f"{err.__class__.__name__}: {err}"
    sys.stderr.write(msg + "\n")
    if log_path is not None:
        sys.stderr.write(f"See log: {log_path}\n")
    return 2


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="trancheapply",
        description=(
            "TrancheApply: tag recalibrated variant calls with their truth-sensitivity tranche "
            "in a single streaming pass over a coordinate-sorted VCF."
        ),
    )
    p.add_argument("--version", action="version", version=f"trancheapply {__version__}")

    sub = p.add_subparsers(dest="cmd", required=True)

    # -----------------
    # quickstart
    # -----------------
    sub.add_parser(
        "quickstart",
        help="Print ready-to-run recipes for common scenarios.",
    )

    # -----------------
    # make-toy-data
    # -----------------
    t = sub.add_parser(
        "make-toy-data",
        help="Generate a tiny input VCF, recal VCF and tranches file for demos/tests.",
    )
    t.add_argument("--outdir", required=True, help="Output directory for toy data.")
    t.add_argument("--dry-run", action="store_true", help="Validate paths without writing files.")

    # -----------------
    # tranches
    # -----------------
    tr = sub.add_parser(
        "tranches",
        help="Show the tranches retained at a truth-sensitivity level, in classification order.",
    )
    tr.add_argument("--tranches-file", required=True, type=_path_exists, help="Tranches file.")
    tr.add_argument(
        "--ts-filter-level",
        type=float,
        default=99.0,
        help="Truth sensitivity level at which to start filtering.",
    )
    tr.add_argument("-v", "--verbose", action="count", default=0, help="Increase verbosity (-v/-vv).")

    # -----------------
    # apply
    # -----------------
    a = sub.add_parser(
        "apply",
        help="Apply tranche filters to an input VCF using a recal VCF and a tranches file.",
    )
    a.add_argument("--input", required=True, type=_path_exists, help="Input VCF (.vcf/.vcf.gz), coordinate-sorted.")
    a.add_argument("--recal", required=True, type=_path_exists, help="Recal VCF with VQSLOD/culprit.")
    a.add_argument("--tranches-file", required=True, type=_path_exists, help="Tranches file.")
    a.add_argument("--outdir", required=True, help="Output directory (summary, report, logs).")
    a.add_argument(
        "--out",
        default=None,
        help="Output VCF path (default: outdir/recalibrated.vcf.gz).",
    )
    a.add_argument(
        "--ts-filter-level",
        type=float,
        default=99.0,
        help="Truth sensitivity level at which to start filtering.",
    )
    a.add_argument(
        "--mode",
        choices=["SNP", "INDEL", "BOTH"],
        default="SNP",
        help="Variant types to recalibrate; other records are emitted untouched.",
    )
    a.add_argument(
        "--ignore-filter",
        action="append",
        default=[],
        help="Recalibrate records even if they carry this input filter (repeatable).",
    )

    # Traversal control
    a.add_argument(
        "--max-records",
        type=_non_negative_int,
        default=None,
        help="Stop after this many sites (per contig with --threads > 1). For debugging runs.",
    )
    a.add_argument(
        "--downsample-to",
        type=_non_negative_int,
        default=None,
        help="Keep at most this many input records starting at each site (random subset).",
    )
    a.add_argument("--seed", type=int, default=None, help="Seed for --downsample-to.")
    a.add_argument(
        "--threads",
        type=int,
        default=1,
        help="Traverse contigs in parallel (needs bgzipped + tabix-indexed inputs).",
    )

    a.add_argument("--no-report", action="store_true", help="Skip plots and the HTML report.")
    a.add_argument("--dry-run", action="store_true", help="Validate inputs and print planned outputs.")
    a.add_argument("--resume", action="store_true", help="Skip if outputs already exist.")
    a.add_argument("-v", "--verbose", action="count", default=0, help="Increase verbosity (-v/-vv).")

    return p


# -----------------
# Command handlers
# -----------------

def cmd_quickstart() -> int:
    lines = [
        "TrancheApply quickstart (copy/paste):",
        "",
        "1) Try it on toy data:",
        "   trancheapply make-toy-data --outdir toy/",
        "   trancheapply apply \\",
        "     --input toy/input.vcf.gz \\",
        "     --recal toy/recal.vcf.gz \\",
        "     --tranches-file toy/toy.tranches \\",
        "     --outdir toy_out/",
        "",
        "2) SNP recalibration at 99.0% truth sensitivity:",
        "   trancheapply apply \\",
        "     --input raw.vcf.gz --recal snp.recal.vcf.gz --tranches-file snp.tranches \\",
        "     --ts-filter-level 99.0 --mode SNP \\",
        "     --outdir results/",
        "   Outputs: results/recalibrated.vcf.gz, results/report.html, results/summary.json",
        "",
        "3) Inspect which tranches a level keeps:",
        "   trancheapply tranches --tranches-file snp.tranches --ts-filter-level 99.0",
        "",
        "Tip: use --dry-run to validate inputs, --threads N to process contigs in parallel.",
    ]
    print("\n".join(lines))
    return 0


def cmd_make_toy_data(args: argparse.Namespace) -> int:
    outdir = Path(args.outdir).expanduser().resolve()
    if args.dry_run:
        print(f"Would write toy data into: {outdir}")
        return 0

    summary = make_toy_data(outdir=outdir)
    print(json.dumps(summary, indent=2))
    return 0


def cmd_tranches(args: argparse.Namespace) -> int:
    _setup_logging(args.verbose, logfile=None)
    try:
        table = load_threshold_table(args.tranches_file, float(args.ts_filter_level))
    except Exception as e:
        return _handle_error(e)

    descriptions = filter_descriptions(table)
    print("index\tname\ttruth_sensitivity\tmin_vqslod\tmodel\toutcome")
    last = len(table) - 1
    unreachable = set()
    for i, t in enumerate(table):
        if i == last:
            outcome = "PASS"
        elif is_reachable(table, i):
            outcome = t.name
        else:
            # Every score reaching this threshold already passes or is tagged earlier.
            outcome = "unreachable"
            unreachable.add(t.name)
        print(f"{i}\t{t.name}\t{t.truth_sensitivity}\t{t.threshold}\t{t.model}\t{outcome}")
    print("")
    for name, desc in descriptions.items():
        note = " (unreachable)" if name in unreachable else ""
        print(f"{name}: {desc}{note}")
    return 0


def cmd_apply(args: argparse.Namespace) -> int:
    outdir = Path(args.outdir).expanduser().resolve()
    log_path = _log_path(outdir, "apply.log")
    _setup_logging(args.verbose, logfile=None if args.dry_run else log_path)

    logger = logging.getLogger("trancheapply")
    logger.info("trancheapply %s", __version__)

    out_vcf = Path(args.out).expanduser().resolve() if args.out else outdir / "recalibrated.vcf.gz"

    try:
        check_vcf_index(args.input, required=args.threads > 1)
        check_vcf_index(args.recal, required=args.threads > 1)
        table = load_threshold_table(args.tranches_file, float(args.ts_filter_level))

        if args.dry_run:
            print("Dry-run: inputs look OK.")
            print(f"Tranches retained at {args.ts_filter_level}: {', '.join(table.names)}")
            print(f"Records at or above {table.most_inclusive.threshold} pass ({table.most_inclusive.name}).")
            print("Planned outputs:")
            print(f"  recalibrated VCF -> {out_vcf}")
            print(f"  summary.json -> {outdir / 'summary.json'}")
            if not args.no_report:
                print(f"  report.html -> {outdir / 'report.html'}")
            return 0

        outdir = ensure_outdir(outdir)

        if args.resume and (outdir / "summary.json").exists() and out_vcf.exists():
            logger.info("Resume enabled: summary.json already exists in %s", outdir)
            print(str(out_vcf))
            return 0

        run = apply_vcf(
            input_vcf=args.input,
            recal_vcf=args.recal,
            tranches_file=args.tranches_file,
            out_vcf=out_vcf,
            outdir=outdir,
            ts_filter_level=float(args.ts_filter_level),
            mode=str(args.mode),
            ignore_filters=list(args.ignore_filter),
            max_records=args.max_records,
            downsample_to=args.downsample_to,
            seed=args.seed,
            threads=int(args.threads),
            progress=True,
        )

        if not args.no_report:
            plots_dir = outdir / "plots"
            plots_dir.mkdir(parents=True, exist_ok=True)
            counts_png = plots_dir / "tranche_counts.png"
            hist_png = plots_dir / "vqslod_hist.png"

            order = ["PASS"] + table.names[:-1] + [table.lowest.name + "+"]
            plot_tranche_counts(tranche_counts=run["tranche_counts"], order=order, out_png=counts_png)
            plot_vqslod_hist(
                bin_edges=run["vqslod_hist"]["bin_edges"],
                counts=run["vqslod_hist"]["counts"],
                thresholds=[t.threshold for t in table],
                out_png=hist_png,
            )
            report_path = render_report(
                outdir=outdir,
                version=__version__,
                run=run,
                plots={
                    "tranche_counts": str(Path("plots") / counts_png.name),
                    "vqslod_hist": str(Path("plots") / hist_png.name),
                },
            )
            logger.info("Report written: %s", report_path)

        print(str(out_vcf))
        return 0
    except Exception as e:
        return _handle_error(e, log_path=log_path)


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.cmd == "quickstart":
        return cmd_quickstart()
    if args.cmd == "make-toy-data":
        return cmd_make_toy_data(args)
    if args.cmd == "tranches":
        return cmd_tranches(args)
    if args.cmd == "apply":
        return cmd_apply(args)

    parser.error(f"Unknown command: {args.cmd}")
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
