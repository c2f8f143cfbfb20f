"""
Vendor file decoding through ProteoWizard in Apptainer.

Thermo ``.raw`` files and Bruker ``.d`` folders are converted to mzML by
ProteoWizard's msconvert running in an Apptainer container, and the
converted file is then read with MzMLReader. Scans, numbering and
precursor links come from the converted mzML; the source descriptor
describes the original vendor file.

The container image is located by ``utils.external.find_sif_file``
(``$MSUNIFY_PWIZ_SIF``, the working directory, the home directory...).
"""

import logging
import subprocess
import tempfile
import time
from concurrent.futures import ProcessPoolExecutor, as_completed
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, ClassVar, Optional

from ..base import SpectrumFormat, SpectrumReader
from ..formats import FormatId
from ..registry import FormatRegistry
from .mzml import MzMLReader
from ...core import MSRun, SourceDescriptor, Spectrum
from ...core.source import (
    BRUKER_FILE_FORMAT,
    THERMO_NATIVE_ID_FORMAT,
    THERMO_RAW_FILE_FORMAT,
)
from ...exceptions import DecoderUnavailable, MalformedRecord, UnsupportedFormat
from ...utils.external import (
    ParallelMode,
    check_apptainer_available,
    find_apptainer,
    find_sif_file,
    get_system_resources,
    validate_sif_file,
)
from ...utils.files import sha1_digest


logger = logging.getLogger(__name__)

BRUKER_NATIVE_ID_FORMAT = "Bruker TDF nativeID format"

# Conversion timeout per file in seconds
CONVERSION_TIMEOUT = 3600


@dataclass(frozen=True)
class ConversionOptions:
    """Options for msconvert file conversion."""

    precision: int = 64                # 32 or 64 bit
    compression: str = 'zlib'          # zlib or none
    ms_levels: Optional[tuple[int, ...]] = None
    peak_picking: bool = False
    peak_picking_ms_levels: Optional[tuple[int, ...]] = None
    scan_range: Optional[tuple[int, int]] = None
    rt_range: Optional[tuple[float, float]] = None   # seconds
    mz_range: Optional[tuple[float, float]] = None
    extra_args: tuple[str, ...] = ()

    def to_msconvert_args(self) -> list[str]:
        """Convert options to msconvert command-line arguments."""
        args = ['--mzML', '--32' if self.precision == 32 else '--64']
        if self.compression == 'zlib':
            args.append('--zlib')

        if self.ms_levels:
            levels = ' '.join(str(level) for level in self.ms_levels)
            args.extend(['--filter', f'msLevel {levels}'])

        if self.peak_picking:
            if self.peak_picking_ms_levels:
                levels = '-'.join(str(level) for level in self.peak_picking_ms_levels)
                args.extend(['--filter', f'peakPicking vendor msLevel={levels}'])
            else:
                args.extend(['--filter', 'peakPicking vendor'])

        if self.scan_range:
            args.extend(['--filter', f'scanNumber [{self.scan_range[0]},{self.scan_range[1]}]'])

        # msconvert expects minutes
        if self.rt_range:
            args.extend([
                '--filter',
                f'scanTime [{self.rt_range[0] / 60.0},{self.rt_range[1] / 60.0}]',
            ])

        if self.mz_range:
            args.extend(['--filter', f'mzWindow [{self.mz_range[0]},{self.mz_range[1]}]'])

        args.extend(self.extra_args)
        return args


@dataclass
class ConversionResult:
    """Result of a file conversion."""
    input_path: Path
    output_path: Optional[Path]
    success: bool
    error_message: Optional[str] = None
    conversion_time_seconds: float = 0.0


def require_converter(sif_path: Optional[Path | str] = None) -> tuple[Path, Path]:
    """
    Locate Apptainer and the ProteoWizard image.

    Returns:
        (apptainer executable, SIF image)

    Raises:
        DecoderUnavailable: If either is missing or the image is invalid.
    """
    apptainer = find_apptainer()
    if apptainer is None:
        raise DecoderUnavailable(
            "Apptainer/Singularity not found. Install with: apt install apptainer"
        )
    sif = Path(sif_path) if sif_path is not None else find_sif_file()
    if sif is None:
        raise DecoderUnavailable(
            "ProteoWizard SIF file not found. Set MSUNIFY_PWIZ_SIF or pull "
            "docker://proteowizard/pwiz-skyline-i-agree-to-the-vendor-licenses"
        )
    valid, message = validate_sif_file(sif)
    if not valid:
        raise DecoderUnavailable(f"Invalid SIF file: {message}", sif)
    return apptainer, sif


def _convert_single_file(
    input_path: Path,
    output_dir: Path,
    sif_path: Path,
    apptainer_path: Path,
    options: ConversionOptions,
) -> ConversionResult:
    """
    Convert a single file using msconvert in Apptainer.

    Runs in worker processes during batch conversion, so failures are
    reported in the result rather than raised.
    """
    start_time = time.time()
    output_path = output_dir / f"{input_path.stem}.mzML"

    cmd = [
        str(apptainer_path),
        'exec',
        '--bind', f'{input_path.parent.resolve()}:/input:ro',
        '--bind', f'{output_dir.resolve()}:/output',
        str(sif_path),
        'wine', 'msconvert',
        f'/input/{input_path.name}',
        '-o', '/output',
        '--outfile', output_path.name,
    ]
    cmd.extend(options.to_msconvert_args())
    logger.debug(f"Running: {' '.join(cmd)}")

    try:
        result = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            timeout=CONVERSION_TIMEOUT,
        )
    except subprocess.TimeoutExpired:
        return ConversionResult(
            input_path=input_path,
            output_path=None,
            success=False,
            error_message=f"Conversion timed out after {CONVERSION_TIMEOUT} s",
            conversion_time_seconds=time.time() - start_time,
        )
    except OSError as e:
        return ConversionResult(
            input_path=input_path,
            output_path=None,
            success=False,
            error_message=str(e),
            conversion_time_seconds=time.time() - start_time,
        )

    elapsed = time.time() - start_time
    if result.returncode != 0:
        return ConversionResult(
            input_path=input_path,
            output_path=None,
            success=False,
            error_message=f"msconvert failed: {result.stderr[:500]}",
            conversion_time_seconds=elapsed,
        )
    if not output_path.exists():
        return ConversionResult(
            input_path=input_path,
            output_path=None,
            success=False,
            error_message="Output file not created",
            conversion_time_seconds=elapsed,
        )
    return ConversionResult(
        input_path=input_path,
        output_path=output_path,
        success=True,
        conversion_time_seconds=elapsed,
    )


class ProteoWizardReader(SpectrumReader):
    """
    Reader for vendor files, backed by a temporary msconvert output.

    ``open()`` converts the vendor file into a private temporary
    directory and opens the result with MzMLReader; ``close()`` removes
    it. Subclasses fix the vendor format.

    Example:
        >>> with ThermoRawReader("sample.raw") as reader:
        ...     spectrum = reader.get_one_based_scan(1)
    """

    native_id_format: ClassVar[str]
    file_format: ClassVar[str]

    def __init__(
        self,
        path: Path | str,
        sif_path: Optional[Path | str] = None,
        options: Optional[ConversionOptions] = None,
    ):
        super().__init__(path)
        self._sif_path = sif_path
        self._options = options or ConversionOptions()
        self._temp_dir: Optional[tempfile.TemporaryDirectory] = None
        self._mzml_reader: Optional[MzMLReader] = None
        self._source_file: Optional[SourceDescriptor] = None

    def open(self) -> 'ProteoWizardReader':
        """Convert the vendor file and open the converted mzML."""
        if self._is_open:
            return self
        apptainer, sif = require_converter(self._sif_path)
        self._temp_dir = tempfile.TemporaryDirectory(prefix='msunify_')
        try:
            logger.info(f"Converting {self.path.name} using ProteoWizard...")
            result = _convert_single_file(
                input_path=self.path,
                output_dir=Path(self._temp_dir.name),
                sif_path=sif,
                apptainer_path=apptainer,
                options=self._options,
            )
            if not result.success or result.output_path is None:
                raise MalformedRecord(f"Conversion failed: {result.error_message}", self.path)
            logger.info(f"Conversion complete in {result.conversion_time_seconds:.1f}s")
            self._mzml_reader = MzMLReader(result.output_path).open()
        except Exception:
            self._cleanup()
            raise
        self._is_open = True
        return self

    def _cleanup(self) -> None:
        if self._mzml_reader is not None:
            self._mzml_reader.close()
            self._mzml_reader = None
        if self._temp_dir is not None:
            self._temp_dir.cleanup()
            self._temp_dir = None

    def close(self) -> None:
        self._cleanup()
        self._is_open = False

    def __len__(self) -> int:
        self._check_open()
        return len(self._mzml_reader)

    def _read_record(self, index: int) -> dict:
        return self._mzml_reader._read_record(index)

    def _build_spectrum(self, record: dict, index: int) -> Spectrum:
        return self._mzml_reader._build_spectrum(record, index)

    @property
    def source_file(self) -> SourceDescriptor:
        """Descriptor of the original vendor file (not the converted mzML)."""
        if self._source_file is None:
            checksum = sha1_digest(self.path) if self.path.is_file() else None
            self._source_file = SourceDescriptor.for_path(
                self.path, self.native_id_format, self.file_format, checksum_value=checksum,
            )
        return self._source_file


class ThermoRawReader(ProteoWizardReader):
    format_id: ClassVar[FormatId] = FormatId.THERMO_RAW
    native_id_format: ClassVar[str] = THERMO_NATIVE_ID_FORMAT
    file_format: ClassVar[str] = THERMO_RAW_FILE_FORMAT


class BrukerDReader(ProteoWizardReader):
    format_id: ClassVar[FormatId] = FormatId.BRUKER_D
    native_id_format: ClassVar[str] = BRUKER_NATIVE_ID_FORMAT
    file_format: ClassVar[str] = BRUKER_FILE_FORMAT


class ProteoWizardFormat(SpectrumFormat):
    """Read-only codec for vendor formats."""

    @classmethod
    def is_available(cls) -> bool:
        """Whether Apptainer and a ProteoWizard image are installed."""
        available, _ = check_apptainer_available()
        return available and find_sif_file() is not None

    def read_source_file(self, path: Path | str) -> SourceDescriptor:
        # Header-only: no conversion needed
        return self.reader_class(path).source_file

    def encode(self, scans, source, path, write_index=True) -> Path:
        raise UnsupportedFormat(f"Writing {self.format_id.name} files is not supported")


@FormatRegistry.register(FormatId.THERMO_RAW)
class ThermoRawFormat(ProteoWizardFormat):
    reader_class = ThermoRawReader


@FormatRegistry.register(FormatId.BRUKER_D)
class BrukerDFormat(ProteoWizardFormat):
    reader_class = BrukerDReader


def convert_files_batch(
    input_paths: list[Path],
    output_dir: Path,
    sif_path: Optional[Path] = None,
    options: Optional[ConversionOptions] = None,
    parallel_mode: ParallelMode = ParallelMode.LIGHT,
    custom_workers: Optional[int] = None,
    progress_callback: Optional[Callable[[int, int, ConversionResult], None]] = None,
) -> list[ConversionResult]:
    """
    Convert multiple vendor files to mzML in parallel.

    Args:
        input_paths: List of paths to convert.
        output_dir: Output directory for converted files.
        sif_path: Path to ProteoWizard SIF file.
        options: Conversion options.
        parallel_mode: Parallelization intensity (LIGHT=25%, HEAVY=75%).
        custom_workers: Number of workers for CUSTOM mode.
        progress_callback: Callback function(completed, total, result) for progress.

    Returns:
        List of ConversionResult objects, in input order.

    Raises:
        DecoderUnavailable: If Apptainer or the SIF image is missing.
    """
    if not input_paths:
        return []

    apptainer, sif = require_converter(sif_path)
    options = options or ConversionOptions()
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    n_workers = get_system_resources().get_workers(parallel_mode, custom_workers)
    logger.info(
        f"Converting {len(input_paths)} files with {n_workers} workers "
        f"(mode: {parallel_mode.name})"
    )

    results: list[ConversionResult] = []
    if n_workers == 1:
        for i, path in enumerate(input_paths):
            result = _convert_single_file(Path(path), output_dir, sif, apptainer, options)
            results.append(result)
            if progress_callback:
                progress_callback(i + 1, len(input_paths), result)
    else:
        with ProcessPoolExecutor(max_workers=n_workers) as executor:
            futures = [
                executor.submit(_convert_single_file, Path(path), output_dir, sif, apptainer, options)
                for path in input_paths
            ]
            for completed, future in enumerate(as_completed(futures), start=1):
                result = future.result()
                results.append(result)
                if progress_callback:
                    progress_callback(completed, len(input_paths), result)

    # Restore input order
    by_input = {result.input_path: result for result in results}
    results = [by_input[Path(path)] for path in input_paths]

    success_count = sum(1 for r in results if r.success)
    logger.info(f"Conversion complete: {success_count}/{len(results)} successful")
    return results


def read_with_proteowizard(
    path: Path | str,
    sif_path: Optional[Path | str] = None,
    options: Optional[ConversionOptions] = None,
) -> MSRun:
    """
    Convert a vendor file and load all of its scans.

    Example:
        >>> run = read_with_proteowizard("sample.raw")
        >>> print(f"Loaded {len(run)} spectra")
    """
    reader_class = BrukerDReader if Path(path).suffix.lower() == '.d' else ThermoRawReader
    with reader_class(path, sif_path=sif_path, options=options) as reader:
        return MSRun(reader.read_all(), source=reader.source_file)
