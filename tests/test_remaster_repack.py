"""Tests for ISO repackaging."""

import subprocess
from datetime import date
from pathlib import Path
from unittest.mock import patch

import pytest

from ubuntu_preseed_iso.errors import RepackagingError
from ubuntu_preseed_iso.releases.catalog import build_catalog
from ubuntu_preseed_iso.remaster.repack import (
    MBR_TEMPLATE_SIZE,
    SECTOR_SIZE,
    BootImages,
    PartitionExtent,
    compose_minimal_command,
    compose_partition_split_command,
    compose_repack_command,
    compose_simple_hybrid_command,
    copy_byte_range,
    default_volume_id,
    extract_boot_images,
    parse_fdisk_partition,
    read_efi_partition,
    repackage_iso,
)

RUN = "ubuntu_preseed_iso.tools.subprocess.run"

FDISK_OUTPUT = """Disk impish.iso: 2.88 GiB, 3089795072 bytes, 6034756 sectors
Units: sectors of 1 * 512 = 512 bytes
Sector size (logical/physical): 512 bytes / 512 bytes
I/O size (minimum/optimal): 512 bytes / 512 bytes
Disklabel type: gpt
Disk identifier: 8E8D4CB5-6A89-4B2E-8F40-3C1A1D1D8D11

Device           Start     End Sectors  Size Type
impish.iso1         64 6024371 6024308  2.9G Microsoft basic data
impish.iso2    6024372 6032867    8496  4.1M EFI System
impish.iso3    6032868 6033467     600  300K Microsoft basic data
"""

FDISK_DOS_OUTPUT = """Disklabel type: dos

Device      Boot Start     End Sectors  Size Id Type
small.iso1  *        0    4095    4096    2M  0 Empty
small.iso2        4096    4103       8    4K ef EFI (FAT-12/16/32)
"""


def completed(cmd, returncode=0, stdout="", stderr=""):
    return subprocess.CompletedProcess(cmd, returncode, stdout=stdout, stderr=stderr)


class TestDefaultVolumeId:
    """Tests for default_volume_id function."""

    def test_dated_label(self):
        assert default_volume_id(date(2022, 4, 21)) == "ubuntu-preseed-2022-04-21"


class TestParseFdiskPartition:
    """Tests for parse_fdisk_partition function."""

    def test_gpt_table(self):
        """Should find the .iso2 row of a GPT hybrid image."""
        extent = parse_fdisk_partition(FDISK_OUTPUT)

        assert extent == PartitionExtent(start_sector=6024372, sector_count=8496)
        assert extent.offset == 6024372 * SECTOR_SIZE
        assert extent.size_bytes == 8496 * SECTOR_SIZE

    def test_dos_table_with_boot_flag(self):
        """Rows with a boot flag column are parsed too."""
        assert parse_fdisk_partition(FDISK_DOS_OUTPUT) == PartitionExtent(4096, 8)

    def test_image_without_iso_extension(self):
        """Without an .iso2 device name the EFI-typed row is used."""
        output = FDISK_OUTPUT.replace("impish.iso", "impish-daily")

        assert parse_fdisk_partition(output) == PartitionExtent(6024372, 8496)

    def test_dos_table_by_type(self):
        output = FDISK_DOS_OUTPUT.replace("small.iso", "/tmp/small.img")

        assert parse_fdisk_partition(output) == PartitionExtent(4096, 8)

    def test_no_efi_partition(self):
        """An image without the partition is a repackaging error."""
        with pytest.raises(RepackagingError) as exc_info:
            parse_fdisk_partition("Disklabel type: dos\n")

        assert exc_info.value.code == "efi_partition_not_found"


class TestCopyByteRange:
    """Tests for copy_byte_range function."""

    def test_copies_range(self, tmp_path):
        source = tmp_path / "src.bin"
        source.write_bytes(bytes(range(256)) * 4)
        dest = tmp_path / "dst.bin"

        assert copy_byte_range(source, dest, 10, 300, chunk_size=64) == 300
        assert dest.read_bytes() == (bytes(range(256)) * 4)[10:310]

    def test_short_source(self, tmp_path):
        """Copying past the end stops at end of file."""
        source = tmp_path / "src.bin"
        source.write_bytes(b"abc")

        assert copy_byte_range(source, tmp_path / "dst.bin", 1, 10) == 2


class TestExtractBootImages:
    """Tests for extract_boot_images function."""

    def _make_iso(self, path: Path, sectors: int) -> bytes:
        data = bytes((i * 7) % 256 for i in range(sectors * SECTOR_SIZE))
        path.write_bytes(data)
        return data

    def test_carves_mbr_and_efi(self, tmp_path):
        """The MBR template and EFI partition bytes are copied exactly."""
        iso = tmp_path / "small.iso"
        data = self._make_iso(iso, 4104)

        with patch(RUN, side_effect=lambda cmd, **kw: completed(cmd, stdout=FDISK_DOS_OUTPUT)):
            images = extract_boot_images(iso, tmp_path, "IMPISH")

        assert images.mbr_path == tmp_path / "IMPISH.mbr"
        assert images.mbr_path.read_bytes() == data[:MBR_TEMPLATE_SIZE]
        start = 4096 * SECTOR_SIZE
        assert images.efi_path.read_bytes() == data[start : start + 8 * SECTOR_SIZE]

    def test_truncated_iso(self, tmp_path):
        """An ISO shorter than its partition table claims is rejected."""
        iso = tmp_path / "small.iso"
        self._make_iso(iso, 4100)

        with patch(RUN, side_effect=lambda cmd, **kw: completed(cmd, stdout=FDISK_DOS_OUTPUT)):
            with pytest.raises(RepackagingError) as exc_info:
                extract_boot_images(iso, tmp_path, "IMPISH")

        assert exc_info.value.code == "truncated_image"

    def test_fdisk_failure(self, tmp_path):
        iso = tmp_path / "small.iso"
        self._make_iso(iso, 8)

        with patch(RUN, side_effect=lambda cmd, **kw: completed(cmd, 1, stderr="bad")):
            with pytest.raises(RepackagingError) as exc_info:
                extract_boot_images(iso, tmp_path, "IMPISH")

        assert exc_info.value.code == "fdisk_error"


class TestComposeCommands:
    """Tests for the xorriso recipes."""

    def test_minimal(self, tmp_path):
        dest = tmp_path / "out.iso"
        assert compose_minimal_command("vol", dest) == [
            "xorriso", "-as", "mkisofs", "-r", "-V", "vol", "-o", str(dest), ".",
        ]  # fmt: skip

    def test_simple_hybrid(self, tmp_path):
        """The isolinux recipe uses the system MBR template."""
        cmd = compose_simple_hybrid_command("vol", tmp_path / "out.iso", Path("/mbr.bin"))

        assert cmd[cmd.index("-isohybrid-mbr") + 1] == "/mbr.bin"
        assert cmd[cmd.index("-b") + 1] == "isolinux/isolinux.bin"
        assert cmd[cmd.index("-e") + 1] == "boot/grub/efi.img"
        assert "-isohybrid-gpt-basdat" in cmd
        assert cmd[-3:] == ["-o", str(tmp_path / "out.iso"), "."]

    def test_partition_split(self, tmp_path):
        """The split recipe re-attaches the carved boot images."""
        images = BootImages(tmp_path / "IMPISH.mbr", tmp_path / "IMPISH.efi")
        cmd = compose_partition_split_command("vol", tmp_path / "out.iso", images)

        assert cmd[cmd.index("--grub2-mbr") + 1] == str(images.mbr_path)
        i = cmd.index("-append_partition")
        assert cmd[i + 1 : i + 4] == ["2", "0xEF", str(images.efi_path)]
        assert cmd[cmd.index("-e") + 1] == "--interval:appended_partition_2:all::"
        assert cmd[-1] == "."

    def test_dispatch_by_release(self, tmp_path):
        catalog = build_catalog()
        dest = tmp_path / "out.iso"

        cmd = compose_repack_command(
            catalog["JAMMY"], dest, "vol", tmp_path / "src.iso", tmp_path, Path("/mbr")
        )
        assert cmd == compose_minimal_command("vol", dest)

        cmd = compose_repack_command(
            catalog["FOCAL"], dest, "vol", tmp_path / "src.iso", tmp_path, Path("/mbr")
        )
        assert "-isohybrid-mbr" in cmd


class TestRepackageIso:
    """Tests for repackage_iso function."""

    def test_success(self, tmp_path):
        """xorriso runs inside the tree and writes the destination."""
        tree = tmp_path / "tree"
        tree.mkdir()
        dest = tmp_path / "out" / "new.iso"

        def fake_xorriso(cmd, **kwargs):
            Path(cmd[cmd.index("-o") + 1]).write_bytes(b"iso")
            return completed(cmd)

        with patch(RUN, side_effect=fake_xorriso) as mock_run:
            result = repackage_iso(
                tree, dest, build_catalog()["JAMMY"], tmp_path / "src.iso",
                tmp_path, Path("/mbr"), volume_id="vol",
            )  # fmt: skip

        assert result == dest
        assert dest.read_bytes() == b"iso"
        assert mock_run.call_args[1]["cwd"] == tree

    def test_failure_removes_partial_output(self, tmp_path):
        """A failed build leaves no destination file."""
        tree = tmp_path / "tree"
        tree.mkdir()
        dest = tmp_path / "new.iso"

        def failing_xorriso(cmd, **kwargs):
            dest.write_bytes(b"partial")
            return completed(cmd, returncode=32, stderr="No space left on device")

        with patch(RUN, side_effect=failing_xorriso):
            with pytest.raises(RepackagingError) as exc_info:
                repackage_iso(
                    tree, dest, build_catalog()["JAMMY"], tmp_path / "src.iso",
                    tmp_path, Path("/mbr"),
                )  # fmt: skip

        assert exc_info.value.code == "xorriso_error"
        assert "No space left" in exc_info.value.message
        assert not dest.exists()

    def test_interrupt_removes_partial_output(self, tmp_path):
        """Ctrl-C during xorriso leaves no destination file."""
        tree = tmp_path / "tree"
        tree.mkdir()
        dest = tmp_path / "new.iso"

        def interrupted_xorriso(cmd, **kwargs):
            Path(cmd[cmd.index("-o") + 1]).write_bytes(b"partial")
            raise KeyboardInterrupt

        with patch(RUN, side_effect=interrupted_xorriso):
            with pytest.raises(KeyboardInterrupt):
                repackage_iso(
                    tree, dest, build_catalog()["JAMMY"], tmp_path / "src.iso",
                    tmp_path, Path("/mbr"),
                )  # fmt: skip

        assert not dest.exists()

    def test_termination_removes_partial_output(self, tmp_path):
        """SIGTERM (delivered as SystemExit) leaves no destination file."""
        tree = tmp_path / "tree"
        tree.mkdir()
        dest = tmp_path / "new.iso"

        def terminated_xorriso(cmd, **kwargs):
            dest.write_bytes(b"partial")
            raise SystemExit(143)

        with patch(RUN, side_effect=terminated_xorriso):
            with pytest.raises(SystemExit):
                repackage_iso(
                    tree, dest, build_catalog()["JAMMY"], tmp_path / "src.iso",
                    tmp_path, Path("/mbr"),
                )  # fmt: skip

        assert not dest.exists()


class TestReadEfiPartition:
    """Tests for read_efi_partition function."""

    def test_runs_resolved_fdisk(self, tmp_path):
        """fdisk found outside PATH (e.g. /sbin) is run by its full path."""
        with patch(
            "ubuntu_preseed_iso.remaster.repack.find_tool", return_value="/sbin/fdisk"
        ), patch(
            RUN, side_effect=lambda cmd, **kw: completed(cmd, stdout=FDISK_OUTPUT)
        ) as mock_run:
            extent = read_efi_partition(tmp_path / "impish.iso")

        assert mock_run.call_args[0][0] == ["/sbin/fdisk", "-l", str(tmp_path / "impish.iso")]
        assert extent.start_sector == 6024372
