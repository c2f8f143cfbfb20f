"""Command line interface for msunify."""

import argparse
import logging
import sys
from typing import Optional

from .config import FilteringParams
from .core import Spectrum
from .data_file import DataFile
from .io import classify, get_format_info, is_spectral
from .result_file import ResultFile
from .exceptions import MsUnifyError


logger = logging.getLogger(__name__)

EPILOG = """
Examples:
  # Which format is this file?
  msunify classify sample_ms1.feature

  # Summary of a spectral or result file
  msunify info sample.mzML -j 4

  # Decode one scan without loading the whole file
  msunify scan sample.raw 1200

  # Export scans 1-10 to sample_snip_1-10.mzML
  msunify snip sample.mzML 1 10

  # Convert any spectral file to indexed mzML
  msunify convert sample.mgf sample.mzML
"""

# Exit status for typed errors
ERROR_EXIT_CODE = 2


def _filtering_from_args(args: argparse.Namespace) -> Optional[FilteringParams]:
    if args.min_ratio is None and args.max_peaks is None:
        return None
    return FilteringParams(
        min_ratio=args.min_ratio,
        max_peaks_per_scan=args.max_peaks,
        apply_to_ms1_only=args.ms1_only,
    )


def _describe_scan(spectrum: Spectrum) -> str:
    meta = spectrum.metadata
    lines = [
        f"Scan {spectrum.scan_number} (MS{spectrum.ms_level})",
        f"  Native id:      {meta.native_id}",
        f"  RT:             {spectrum.retention_time:.3f} s",
        f"  Centroid:       {spectrum.is_centroid}",
        f"  Peaks:          {spectrum.n_points}",
    ]
    if not spectrum.is_empty:
        low, high = spectrum.mz_range
        lines.append(f"  m/z range:      {low:.4f}-{high:.4f}")
        lines.append(f"  Base peak:      {spectrum.base_peak_mz:.4f} ({spectrum.base_peak_intensity:.4g})")
    if meta.precursor is not None:
        precursor = meta.precursor
        lines.append(f"  Precursor m/z:  {precursor.mz:.4f} (charge {precursor.charge})")
        if precursor.parent_scan_number is not None:
            lines.append(f"  Parent scan:    {precursor.parent_scan_number}")
    return "\n".join(lines)


def cmd_classify(args: argparse.Namespace) -> int:
    format_id = classify(args.path)
    print(f"{format_id.name}\t{get_format_info(format_id).description}")
    return 0


def cmd_info(args: argparse.Namespace) -> int:
    format_id = classify(args.path)
    if not is_spectral(format_id):
        results = ResultFile(args.path, format_id).load_results()
        print(f"File:     {results.path.name}")
        print(f"Format:   {get_format_info(format_id).description}")
        print(f"Records:  {len(results)}")
        return 0

    data = DataFile(args.path, format_id).load_all_static_data(
        _filtering_from_args(args), args.threads
    )
    summary = data.scans.summary()
    source = data.get_source_file()
    print(f"File:         {data.path.name}")
    print(f"Format:       {source.file_format}")
    print(f"Native ids:   {source.native_id_format}")
    if source.checksum_value:
        print(f"{source.checksum_algorithm}:        {source.checksum_value}")
    print(f"Spectra:      {summary['n_spectra']}")
    for level, count in sorted(summary['ms_level_counts'].items()):
        print(f"  MS{level}:        {count}")
    if summary['rt_range_seconds'] is not None:
        rt_min, rt_max = summary['rt_range_seconds']
        print(f"RT range:     {rt_min:.2f}-{rt_max:.2f} s")
    return 0


def cmd_scan(args: argparse.Namespace) -> int:
    data = DataFile(args.path)
    with data.dynamic_connection():
        spectrum = data.get_one_based_scan_from_dynamic_connection(
            args.scan_number, _filtering_from_args(args)
        )
    if spectrum is None:
        print(f"Scan {args.scan_number} is out of range", file=sys.stderr)
        return 1
    print(_describe_scan(spectrum))
    return 0


def cmd_snip(args: argparse.Namespace) -> int:
    output = DataFile(args.path).load_all_static_data().export_snip_as_mzml(args.start, args.end)
    print(output)
    return 0


def cmd_convert(args: argparse.Namespace) -> int:
    data = DataFile(args.path).load_all_static_data(_filtering_from_args(args), args.threads)
    output = data.export_as_mzml(args.output, write_index=not args.no_index)
    print(output)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="msunify",
        description="Read, inspect and convert mass spectrometry data and result files",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=EPILOG,
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging"
    )

    filtering = argparse.ArgumentParser(add_help=False)
    filtering.add_argument(
        "--min-ratio",
        type=float,
        default=None,
        help="Drop peaks below this fraction of the base peak intensity"
    )
    filtering.add_argument(
        "--max-peaks",
        type=int,
        default=None,
        help="Keep at most this many peaks per scan"
    )
    filtering.add_argument(
        "--ms1-only",
        action="store_true",
        help="Apply peak filtering to MS1 scans only"
    )

    threads = argparse.ArgumentParser(add_help=False)
    threads.add_argument(
        "-j", "--threads",
        type=int,
        default=1,
        help="Decoding threads (default: 1)"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    p_classify = subparsers.add_parser("classify", help="Print the format of a file")
    p_classify.add_argument("path", help="File or .d folder")
    p_classify.set_defaults(func=cmd_classify)

    p_info = subparsers.add_parser(
        "info", parents=[filtering, threads], help="Summarise a data or result file"
    )
    p_info.add_argument("path", help="File or .d folder")
    p_info.set_defaults(func=cmd_info)

    p_scan = subparsers.add_parser(
        "scan", parents=[filtering], help="Decode one scan through a dynamic connection"
    )
    p_scan.add_argument("path", help="Spectral file")
    p_scan.add_argument("scan_number", type=int, help="One-based scan number")
    p_scan.set_defaults(func=cmd_scan)

    p_snip = subparsers.add_parser("snip", help="Export a scan range as mzML")
    p_snip.add_argument("path", help="Spectral file")
    p_snip.add_argument("start", type=int, help="First scan (one-based, inclusive)")
    p_snip.add_argument("end", type=int, help="Last scan (inclusive)")
    p_snip.set_defaults(func=cmd_snip)

    p_convert = subparsers.add_parser(
        "convert", parents=[filtering, threads], help="Export a spectral file as mzML"
    )
    p_convert.add_argument("path", help="Spectral file")
    p_convert.add_argument("output", help="Output mzML path")
    p_convert.add_argument(
        "--no-index",
        action="store_true",
        help="Write plain mzML without the offset index and checksum"
    )
    p_convert.set_defaults(func=cmd_convert)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    logger.debug(f"Running {args.command} on {args.path}")
    try:
        return args.func(args)
    except MsUnifyError as e:
        print(f"{e.kind}: {e}", file=sys.stderr)
        return ERROR_EXIT_CODE
    except ValueError as e:
        print(f"{type(e).__name__}: {e}", file=sys.stderr)
        return ERROR_EXIT_CODE


if __name__ == "__main__":
    sys.exit(main())
