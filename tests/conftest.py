from pathlib import Path

import numpy as np
import pytest

from msunify.core import (
    ActivationType,
    Polarity,
    PrecursorInfo,
    ScanMetadata,
    SourceDescriptor,
    Spectrum,
    SpectrumType,
)
from msunify.core.source import THERMO_NATIVE_ID_FORMAT, THERMO_RAW_FILE_FORMAT
from msunify.io.writers import write_mzml


N_SCANS = 142
MS1_EVERY = 4


def build_scans(n_scans=N_SCANS, ms1_every=MS1_EVERY):
    """One MS1 scan followed by (ms1_every - 1) MS2 scans, repeated."""
    scans = []
    last_ms1 = None
    for idx in range(n_scans):
        scan_number = idx + 1
        n_points = 5 + idx % 7
        mz = np.linspace(100.0 + idx, 1000.0 + idx, n_points)
        intensity = np.arange(n_points, 0, -1) * 100.0 + idx
        native_id = f"controllerType=0 controllerNumber=1 scan={scan_number}"
        if idx % ms1_every == 0:
            last_ms1 = scan_number
            metadata = ScanMetadata(
                scan_number=scan_number,
                ms_level=1,
                retention_time=idx * 1.5,
                polarity=Polarity.POSITIVE,
                spectrum_type=SpectrumType.PROFILE,
                scan_window_lower=100.0,
                scan_window_upper=2000.0,
                total_ion_current=float(intensity.sum()),
                injection_time=10.0,
                filter_string="FTMS + p ESI Full ms [100.0000-2000.0000]",
                native_id=native_id,
            )
        else:
            metadata = ScanMetadata(
                scan_number=scan_number,
                ms_level=2,
                retention_time=idx * 1.5,
                polarity=Polarity.POSITIVE,
                spectrum_type=SpectrumType.CENTROID,
                total_ion_current=float(intensity.sum()),
                precursor=PrecursorInfo(
                    mz=400.0 + idx * 0.5,
                    charge=2 + idx % 3,
                    intensity=1.0e5 + idx,
                    isolation_window_lower=1.0,
                    isolation_window_upper=1.0,
                    activation_type=ActivationType.HCD,
                    collision_energy=30.0,
                    parent_scan_number=last_ms1,
                ),
                native_id=native_id,
            )
        scans.append(Spectrum(mz=mz, intensity=intensity, metadata=metadata))
    return scans


@pytest.fixture
def scans_142():
    return build_scans()


@pytest.fixture
def raw_source():
    return SourceDescriptor(
        native_id_format=THERMO_NATIVE_ID_FORMAT,
        file_format=THERMO_RAW_FILE_FORMAT,
        checksum_value="0123456789abcdef0123456789abcdef01234567",
        uri="file:///data",
        name="sample.raw",
        id="RAW1",
    )


@pytest.fixture
def mzml_142(tmp_path, scans_142, raw_source) -> Path:
    """Indexed mzML with 142 scans and MS1/MS2 precursor links."""
    return write_mzml(scans_142, tmp_path / "sample.mzML", source=raw_source)


@pytest.fixture
def mzml_142_unindexed(tmp_path, scans_142, raw_source) -> Path:
    return write_mzml(
        scans_142, tmp_path / "plain.mzML", source=raw_source, write_index=False
    )


MGF_TEXT = """\
BEGIN IONS
TITLE=first spectrum
PEPMASS=500.25 12000
CHARGE=3+
RTINSECONDS=61.5
SCANS=17
300.5 10.0
150.1 20.0
200.2 0.001
END IONS

BEGIN IONS
TITLE=second spectrum
PEPMASS=650.75
RTINSECONDS=75.0
100.0 5.0
110.0 6.0
END IONS

BEGIN IONS
TITLE=negative
PEPMASS=420.0
CHARGE=2-
MSLEVEL=3
120.0 0.001
130.0 0.002
END IONS
"""


@pytest.fixture
def mgf_file(tmp_path) -> Path:
    path = tmp_path / "spectra.mgf"
    path.write_text(MGF_TEXT, encoding="utf-8")
    return path


PSMTSV_TEXT = (
    "File Name\tScan Number\tScan Retention Time\tPrecursor Charge\tBase Sequence\t"
    "Score\tQValue\tProtein Accession\n"
    "sample\t12\t10.53\t2\tPEPTIDEK\t25.337\t0.0\tP12345\n"
    "sample\t15\t11.02\t3\tACDEFGHIK\t18.1\t0.005\t\n"
    "sample\t21\t12.4\t2\tLMNPQR\tNaN\t0.01\tP67890|P11111\n"
)


@pytest.fixture
def psmtsv_file(tmp_path) -> Path:
    path = tmp_path / "AllPSMs.psmtsv"
    path.write_text(PSMTSV_TEXT, encoding="utf-8")
    return path


TOPPIC_TEXT = (
    "********************** Parameters **********************\n"
    "Protein database file:                  proteins.fasta\n"
    "Spectrum file:                          sample_ms2.msalign\n"
    "********************** Parameters **********************\n"
    "Data file name\tPrsm ID\tSpectrum ID\tScan(s)\tRetention time\t#peaks\tCharge\t"
    "Precursor mass\tProteoform\tE-value\n"
    "sample_ms2.msalign\t0\t45\t46\t612.33\t38\t12\t10834.7\t.MKVLAAGIV.\t1.2e-15\n"
    "sample_ms2.msalign\t1\t51\t52\t640.1\t21\t9\t8451.29\t.SGRGKQGG.\t3.4e-07\n"
)


@pytest.fixture
def toppic_file(tmp_path) -> Path:
    path = tmp_path / "sample_prsm.tsv"
    path.write_text(TOPPIC_TEXT, encoding="utf-8")
    return path


MS1_FEATURE_TEXT = (
    "Sample_ID\tID\tMass\tIntensity\tTime_begin\tTime_end\tMinimum_charge_state\t"
    "Maximum_charge_state\n"
    "0\t0\t10834.71\t1.5e7\t600.1\t625.8\t8\t15\n"
    "0\t1\t8451.29\t3.2e6\t630.0\t650.4\t6\t11\n"
)


@pytest.fixture
def ms1_feature_file(tmp_path) -> Path:
    path = tmp_path / "sample_ms1.feature"
    path.write_text(MS1_FEATURE_TEXT, encoding="utf-8")
    return path


MZRT_TEXT = (
    "ID,Fraction_ID,Envelope_num,Mass,MonoMz,Charge,Intensity,mzLo,mzHi,rtLo,rtHi,color,opacity,promex_score\n"
    "0,0,1,10834.71,903.9,12,1.5e7,903.5,905.2,10.0,10.4,#FF0000,0.9,-1000\n"
    "1,0,2,8451.29,846.1,10,3.2e6,845.8,847.0,10.5,10.8,#00FF00,0.5,-1000\n"
)


@pytest.fixture
def mzrt_file(tmp_path) -> Path:
    path = tmp_path / "sample.mzrt.csv"
    path.write_text(MZRT_TEXT, encoding="utf-8")
    return path


FLASHLFQ_TEXT = (
    "File Name\tBase Sequence\tFull Sequence\tProtein Group\tOrganism\tPeptide Monoisotopic Mass\t"
    "MS2 Retention Time\tPrecursor Charge\tTheoretical MZ\tPeak intensity\n"
    "sample\tPEPTIDEK\tPEPTIDEK\tP12345\tHuman\t927.4549\t10.53\t2\t464.7347\t123456.7\n"
    "sample\tLMNPQR\tLM[Common Variable:Oxidation on M]NPQR\tP67890\tHuman\t773.3862\t12.4\t2\t387.7004\t\n"
)


@pytest.fixture
def flashlfq_file(tmp_path) -> Path:
    path = tmp_path / "QuantifiedPeaks.tsv"
    path.write_text(FLASHLFQ_TEXT, encoding="utf-8")
    return path


MSP_TEXT = """\
Name: PEPTIDEK/2
MW: 464.7347
Comment: Parent=464.7347 Mods=0 RT=10.53
Num peaks: 3
147.1128\t1200.0\t"y1/0.0ppm"
244.1656\t5300.5\t"y2/0.1ppm"
359.1925\t800.0

Name: LMNPQR/3
Comment: Parent=258.8027 iRT=-5.2
Num peaks: 2
175.119\t999.0\t"y1"
262.151\t450.0\t"y2"
"""


@pytest.fixture
def msp_file(tmp_path) -> Path:
    path = tmp_path / "library.msp"
    path.write_text(MSP_TEXT, encoding="utf-8")
    return path


PUF_TEMPLATE = """\
<?xml version="1.0" encoding="utf-8"?>
<data_set version="1.1">
  <ms-ms_experiment id="{id}" source="sample.raw">
    <instrument_data>
      <fragmentation_method>HCD</fragmentation_method>
      <ion_type>BY</ion_type>
      <intact_list>
        <intact id="0">
          <mz_monoisotopic>{precursor_mz}</mz_monoisotopic>
          <mass_monoisotopic>{precursor_mass}</mass_monoisotopic>
          <intensity>250000.0</intensity>
        </intact>
      </intact_list>
      <fragment_list>
        <fragment id="0">
          <mz_monoisotopic>{fragment_1}</mz_monoisotopic>
          <intensity>1500.0</intensity>
        </fragment>
        <fragment id="1">
          <mass_monoisotopic>{fragment_2}</mass_monoisotopic>
          <intensity>3200.5</intensity>
        </fragment>
        <fragment id="2">
          <mz_monoisotopic>{fragment_3}</mz_monoisotopic>
        </fragment>
      </fragment_list>
    </instrument_data>
    <analysis id="1" type="absolute_mass">
      <search_parameters><search_type>absolute_mass</search_type><fragment_tolerance units="ppm">10</fragment_tolerance></search_parameters>
      <results>
        <hit_list intact_id="0">
          <hit id="1">
            <description>{description}</description>
            <matching_gene_id>{gene}</matching_gene_id>
            <sequence>MKVLAAGIVALLLAAGCSS</sequence>
            <sequence_length>19</sequence_length>
            <theoretical_mass>{precursor_mass}</theoretical_mass>
            <mass_difference_da>0.0021</mass_difference_da>
            <mass_difference_ppm>0.19</mass_difference_ppm>
            <p_score>1.2E-12</p_score>
            <expected>4.5E-10</expected>
          </hit>
        </hit_list>
      </results>
      <legend>absolute mass search</legend>
    </analysis>
  </ms-ms_experiment>
</data_set>
"""

PUF_EXPERIMENTS = {
    "953": {"precursor_mz": 903.9012, "description": "Histone H4", "gene": "H4C1"},
    "955": {"precursor_mz": 846.1044, "description": "Ubiquitin", "gene": "UBB"},
    "956": {"precursor_mz": 1131.5678, "description": "Cytochrome c", "gene": "CYCS"},
}


def puf_text(experiment_id, precursor_mz, description, gene):
    return PUF_TEMPLATE.format(
        id=experiment_id,
        precursor_mz=precursor_mz,
        precursor_mass=round(precursor_mz * 12 - 12 * 1.00728, 4),
        fragment_1=round(precursor_mz / 3, 4),
        fragment_2=round(precursor_mz / 2, 4),
        fragment_3=round(precursor_mz / 5, 4),
        description=description,
        gene=gene,
    )


@pytest.fixture
def puf_directory(tmp_path) -> Path:
    """Three PUF files whose experiments are 953, 955 and 956, plus an unrelated file."""
    directory = tmp_path / "puf"
    directory.mkdir()
    # written out of order so enumeration order is not creation order
    for experiment_id in ("956", "953", "955"):
        fields = PUF_EXPERIMENTS[experiment_id]
        (directory / f"{experiment_id}.puf").write_text(
            puf_text(experiment_id, **fields), encoding="utf-8"
        )
    (directory / "notes.txt").write_text("not a result file\n", encoding="utf-8")
    return directory


@pytest.fixture
def puf_file(puf_directory) -> Path:
    return puf_directory / "953.puf"
