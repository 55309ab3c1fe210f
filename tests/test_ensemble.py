"""
Tests for the Ensemble Loader.

Discovery runs on real directories; matrix assembly mostly uses an in-memory
reader so each failure mode can be staged exactly.
"""

import logging
from pathlib import Path

import numpy as np
import pytest

from shapemodel.analysis.ensemble import EnsembleLoader, LoadStatus
from shapemodel.errors import (
    DiscoveryError,
    EmptyBatchError,
    ParseError,
    TopologyMismatchError,
)


def points(n: int, offset: float = 0.0) -> np.ndarray:
    return np.arange(3 * n, dtype=float).reshape(n, 3) + offset


class TestDiscover:

    def test_sorted_non_recursive_and_filtered(self, tmp_path):
        for name in ("c.ply", "a.ply", "b.ply", "notes.txt", "mesh.obj"):
            (tmp_path / name).write_text("x")
        sub = tmp_path / "nested"
        sub.mkdir()
        (sub / "d.ply").write_text("x")
        (tmp_path / "dir.ply").mkdir()

        files = EnsembleLoader().discover(tmp_path)

        assert [f.name for f in files] == ["a.ply", "b.ply", "c.ply"]

    def test_pattern_is_configurable(self, tmp_path):
        for name in ("a.ply", "b.vtk", "c.stl"):
            (tmp_path / name).write_text("x")

        loader = EnsembleLoader(extension_pattern=r"\.(?:vtk|stl)")
        assert [f.name for f in loader.discover(tmp_path)] == ["b.vtk", "c.stl"]

    def test_pattern_must_match_whole_suffix(self, tmp_path):
        (tmp_path / "a.plyx").write_text("x")
        (tmp_path / "b.ply").write_text("x")

        assert [f.name for f in EnsembleLoader().discover(tmp_path)] == ["b.ply"]

    def test_empty_directory(self, tmp_path):
        assert EnsembleLoader().discover(tmp_path) == []

    def test_missing_directory(self, tmp_path):
        with pytest.raises(DiscoveryError):
            EnsembleLoader().discover(tmp_path / "missing")

    def test_file_instead_of_directory(self, tmp_path):
        f = tmp_path / "a.ply"
        f.write_text("x")
        with pytest.raises(DiscoveryError):
            EnsembleLoader().discover(f)


class TestLoadFirst:

    def test_reference_count(self, fake_reader_factory, record_factory):
        reader = fake_reader_factory({"a.ply": record_factory(points(5))})
        record, count = EnsembleLoader(reader).load_first("a.ply")

        assert count == 5
        assert record.n_points == 5

    def test_zero_vertices(self, fake_reader_factory, record_factory):
        reader = fake_reader_factory({"a.ply": record_factory(np.empty((0, 3)))})
        with pytest.raises(ParseError):
            EnsembleLoader(reader).load_first("a.ply")

    def test_unreadable(self, fake_reader_factory):
        reader = fake_reader_factory({"a.ply": ParseError("broken")})
        with pytest.raises(ParseError):
            EnsembleLoader(reader).load_first("a.ply")

    def test_reference_skips_unparsable_first_file(self, fake_reader_factory, record_factory):
        reader = fake_reader_factory({
            "a.ply": ParseError("broken"),
            "b.ply": record_factory(points(7)),
        })
        _, count = EnsembleLoader(reader).establish_reference([Path("a.ply"), Path("b.ply")])
        assert count == 7

    def test_reference_skips_unexpected_reader_error(self, fake_reader_factory, record_factory):
        reader = fake_reader_factory({
            "a.ply": RuntimeError("vtk exploded"),
            "b.ply": record_factory(points(5)),
        })
        _, count = EnsembleLoader(reader).establish_reference([Path("a.ply"), Path("b.ply")])
        assert count == 5

    def test_reference_all_unparsable(self, fake_reader_factory):
        reader = fake_reader_factory({"a.ply": ParseError("x"), "b.ply": OSError("y")})
        with pytest.raises(EmptyBatchError):
            EnsembleLoader(reader).establish_reference([Path("a.ply"), Path("b.ply")])


class TestLoadIntoMatrix:

    def test_mismatched_file_is_skipped(self, fake_reader_factory, record_factory):
        """3 files, #2 has a different vertex count: exactly 2 columns."""
        reader = fake_reader_factory({
            "1.ply": record_factory(points(4, 0.0)),
            "2.ply": record_factory(points(5, 100.0)),
            "3.ply": record_factory(points(4, 10.0)),
        })
        paths = [Path("1.ply"), Path("2.ply"), Path("3.ply")]

        batch = EnsembleLoader(reader).load_into_matrix(paths, 4)

        assert batch.matrix.shape == (12, 2)
        assert batch.accepted_count == 2
        np.testing.assert_array_equal(batch.matrix[:, 0], points(4, 0.0).ravel())
        np.testing.assert_array_equal(batch.matrix[:, 1], points(4, 10.0).ravel())

        statuses = [r.status for r in batch.results]
        assert statuses == [LoadStatus.ACCEPTED, LoadStatus.TOPOLOGY_MISMATCH, LoadStatus.ACCEPTED]
        assert [r.column for r in batch.results] == [0, None, 1]

        mismatch = batch.rejected[0]
        assert isinstance(mismatch.error, TopologyMismatchError)
        assert mismatch.error.expected == 4
        assert mismatch.error.found == 5
        with pytest.raises(TopologyMismatchError):
            mismatch.raise_for_status()

    def test_parse_failures_do_not_abort(self, fake_reader_factory, record_factory):
        reader = fake_reader_factory({
            "1.ply": ParseError("truncated header"),
            "2.ply": record_factory(points(3, 1.0)),
            "3.ply": ValueError("bad attribute"),
            "4.ply": record_factory(points(3, 2.0)),
        })
        paths = [Path(f"{i}.ply") for i in range(1, 5)]

        batch = EnsembleLoader(reader).load_into_matrix(paths, 3)

        assert batch.accepted_count == 2
        assert reader.calls == ["1.ply", "2.ply", "3.ply", "4.ply"]
        assert [r.status for r in batch.rejected] == [LoadStatus.PARSE_FAILED, LoadStatus.PARSE_FAILED]
        assert all(isinstance(r.error, ParseError) for r in batch.rejected)

    def test_unexpected_reader_error_rejects_one_file(self, fake_reader_factory, record_factory):
        """A reader crash on file 2 of 3 is recorded as a parse failure, the rest load."""
        crash = RuntimeError("vtk exploded")
        reader = fake_reader_factory({
            "1.ply": record_factory(points(4, 0.0)),
            "2.ply": crash,
            "3.ply": record_factory(points(4, 5.0)),
        })
        paths = [Path("1.ply"), Path("2.ply"), Path("3.ply")]

        batch = EnsembleLoader(reader).load_into_matrix(paths, 4)

        assert batch.matrix.shape == (12, 2)
        failed = batch.results[1]
        assert failed.status == LoadStatus.PARSE_FAILED
        assert isinstance(failed.error, ParseError)
        assert failed.error.__cause__ is crash
        assert "vtk exploded" in str(failed.error)

    def test_non_finite_positions_rejected(self, fake_reader_factory, record_factory):
        bad = points(3)
        bad[1, 2] = np.inf
        reader = fake_reader_factory({
            "1.ply": record_factory(points(3)),
            "2.ply": record_factory(bad),
        })

        batch = EnsembleLoader(reader).load_into_matrix([Path("1.ply"), Path("2.ply")], 3)

        assert batch.accepted_count == 1
        assert batch.results[1].status == LoadStatus.PARSE_FAILED

    def test_last_record_is_last_accepted(self, fake_reader_factory, record_factory):
        faces_a = np.array([[0, 1, 2]])
        faces_b = np.array([[2, 1, 0]])
        reader = fake_reader_factory({
            "1.ply": record_factory(points(3), faces=faces_a),
            "2.ply": record_factory(points(3, 5.0), faces=faces_b),
            "3.ply": record_factory(points(6)),
        })
        paths = [Path("1.ply"), Path("2.ply"), Path("3.ply")]

        batch = EnsembleLoader(reader).load_into_matrix(paths, 3)

        np.testing.assert_array_equal(batch.last_record.faces, faces_b)

    def test_all_rejected_gives_empty_matrix(self, fake_reader_factory, record_factory):
        reader = fake_reader_factory({"1.ply": record_factory(points(2)), "2.ply": ParseError("x")})

        batch = EnsembleLoader(reader).load_into_matrix([Path("1.ply"), Path("2.ply")], 3)

        assert batch.matrix.shape == (9, 0)
        assert batch.is_empty
        assert batch.last_record is None
        with pytest.raises(EmptyBatchError):
            batch.require_samples()

    def test_rejections_are_logged(self, fake_reader_factory, record_factory, caplog):
        reader = fake_reader_factory({"1.ply": record_factory(points(3)), "2.ply": record_factory(points(4))})

        with caplog.at_level(logging.WARNING, logger="shapemodel"):
            EnsembleLoader(reader).load_into_matrix([Path("1.ply"), Path("2.ply")], 3)

        assert any("2.ply" in rec.getMessage() and rec.levelno == logging.WARNING for rec in caplog.records)


class TestLoadDirectory:

    def test_end_to_end_with_ply_files(self, tmp_path, base_grid, write_ply):
        grid, faces = base_grid
        write_ply(tmp_path / "01.ply", grid, faces=faces)
        write_ply(tmp_path / "02.ply", grid[:-1])
        write_ply(tmp_path / "03.ply", grid + [0.0, 0.0, 1.0], faces=faces)

        batch = EnsembleLoader().load(tmp_path)

        assert batch.accepted_count == 2
        assert batch.reference_count == grid.shape[0]
        np.testing.assert_allclose(batch.matrix[:, 1], (grid + [0.0, 0.0, 1.0]).ravel(), atol=1e-6)
        assert batch.last_record.path.name == "03.ply"

    def test_no_files(self, tmp_path):
        (tmp_path / "readme.txt").write_text("nothing here")
        with pytest.raises(EmptyBatchError):
            EnsembleLoader().load(tmp_path)

    def test_all_garbage(self, tmp_path):
        for name in ("a.ply", "b.ply"):
            (tmp_path / name).write_bytes(b"not a mesh at all\x00\x01")
        with pytest.raises(EmptyBatchError):
            EnsembleLoader().load(tmp_path)
