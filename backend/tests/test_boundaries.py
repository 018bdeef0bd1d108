"""
test_boundaries.py - Boundary loading and point containment.

Coverage:
    - Property-bag mapping (ST_NAME / st_name, AC_NAME / ac_name, pc_name)
    - Loud failure on missing keys and bad geometry
    - File-level failures leave the collection unloaded
    - First-match containment and unloaded collections
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from conftest import KANDHAMAL_POINT, OUTSIDE_POINT, PHULBANI_POINT, _square
from geo_assign import boundaries as boundaries_module
from geo_assign.boundaries import (
    ASSEMBLY,
    PARLIAMENTARY,
    BoundaryIndex,
    get_boundary_index,
    load_boundaries,
    load_collection,
    locate,
    parse_features,
    set_boundary_index,
)
from geo_assign.exceptions import BoundaryDataError


def _write(tmp_path, name, payload) -> Path:
    path = tmp_path / name
    path.write_text(payload if isinstance(payload, str) else json.dumps(payload), encoding="utf-8")
    return path


# ════════════════════════════════════════════════════════════════
#  parse_features
# ════════════════════════════════════════════════════════════════

class TestParseFeatures:
    def test_upper_and_lower_case_keys(self, assembly_features):
        features = parse_features(assembly_features, ASSEMBLY)
        assert [(f.state, f.name) for f in features] == [
            ("Odisha", "Kandhamal SC"),
            ("Odisha", "Phulbani (ST)"),
        ]

    def test_raw_name_kept_until_resolution(self, assembly_features):
        # Normalisation happens in the pipeline, not at load time
        assert parse_features(assembly_features, ASSEMBLY)[0].name == "Kandhamal SC"

    def test_parliamentary_state_optional(self, parliamentary_features):
        (feature,) = parse_features(parliamentary_features, PARLIAMENTARY)
        assert feature.name == "Kandhamal"
        assert feature.state is None

    def test_parliamentary_state_read_when_present(self, parliamentary_features):
        parliamentary_features[0]["properties"]["st_name"] = "Odisha"
        (feature,) = parse_features(parliamentary_features, PARLIAMENTARY)
        assert feature.state == "Odisha"

    def test_missing_seat_name_raises(self, assembly_features):
        del assembly_features[1]["properties"]["ac_name"]
        with pytest.raises(BoundaryDataError, match="seat name") as exc_info:
            parse_features(assembly_features, ASSEMBLY)
        assert exc_info.value.context["index"] == 1

    def test_blank_seat_name_raises(self, assembly_features):
        assembly_features[0]["properties"]["AC_NAME"] = "   "
        with pytest.raises(BoundaryDataError, match="seat name"):
            parse_features(assembly_features, ASSEMBLY)

    def test_missing_assembly_state_raises(self, assembly_features):
        del assembly_features[0]["properties"]["ST_NAME"]
        with pytest.raises(BoundaryDataError, match="state name"):
            parse_features(assembly_features, ASSEMBLY)

    def test_unsupported_geometry_raises(self, assembly_features):
        assembly_features[0]["geometry"] = {"type": "Point", "coordinates": [85.1, 20.9]}
        with pytest.raises(BoundaryDataError, match="Invalid geometry"):
            parse_features(assembly_features, ASSEMBLY)

    def test_non_object_feature_raises(self):
        with pytest.raises(BoundaryDataError):
            parse_features(["not a feature"], ASSEMBLY)


# ════════════════════════════════════════════════════════════════
#  File loading
# ════════════════════════════════════════════════════════════════

class TestLoadCollection:
    def test_loads_feature_collection(self, tmp_path, assembly_features):
        path = _write(tmp_path, "ac.json", {"type": "FeatureCollection", "features": assembly_features})
        features, loaded = load_collection(path, ASSEMBLY)
        assert loaded is True
        assert len(features) == 2

    def test_missing_file(self, tmp_path, caplog):
        with caplog.at_level(logging.ERROR):
            features, loaded = load_collection(tmp_path / "absent.json", ASSEMBLY)
        assert (features, loaded) == ([], False)
        assert "automatic assignment disabled" in caplog.text

    def test_invalid_json(self, tmp_path):
        path = _write(tmp_path, "ac.json", "{not json")
        assert load_collection(path, ASSEMBLY) == ([], False)

    def test_not_a_feature_collection(self, tmp_path):
        path = _write(tmp_path, "ac.json", [1, 2, 3])
        assert load_collection(path, ASSEMBLY) == ([], False)

    def test_one_bad_feature_fails_whole_collection(self, tmp_path, assembly_features):
        del assembly_features[1]["properties"]["ac_name"]
        path = _write(tmp_path, "ac.json", {"type": "FeatureCollection", "features": assembly_features})
        assert load_collection(path, ASSEMBLY) == ([], False)


class TestLoadBoundaries:
    def test_both_collections(self, tmp_path, assembly_features, parliamentary_features):
        ac = _write(tmp_path, "ac.json", {"features": assembly_features})
        pc = _write(tmp_path, "pc.json", {"features": parliamentary_features})
        index = load_boundaries(ac, pc)
        assert index.loaded is True
        assert len(index.assembly) == 2
        assert len(index.parliamentary) == 1

    def test_collections_fail_independently(self, tmp_path, assembly_features):
        ac = _write(tmp_path, "ac.json", {"features": assembly_features})
        index = load_boundaries(ac, tmp_path / "missing.json")
        assert index.assembly_loaded is True
        assert index.parliamentary_loaded is False
        assert index.loaded is False


class TestBoundarySingleton:
    def test_default_index_is_unloaded(self, monkeypatch):
        monkeypatch.setattr(boundaries_module, "_index", BoundaryIndex())
        assert get_boundary_index().loaded is False

    def test_set_replaces_index(self, monkeypatch, boundary_index):
        monkeypatch.setattr(boundaries_module, "_index", BoundaryIndex())
        set_boundary_index(boundary_index)
        assert get_boundary_index() is boundary_index


# ════════════════════════════════════════════════════════════════
#  locate
# ════════════════════════════════════════════════════════════════

class TestLocate:
    def test_point_in_both_collections(self, boundary_index):
        lat, lng = KANDHAMAL_POINT
        result = locate(lat, lng, boundary_index)
        assert result.assembly.name == "Kandhamal SC"
        assert result.parliamentary.name == "Kandhamal"

    def test_multipolygon_feature(self, boundary_index):
        lat, lng = PHULBANI_POINT
        assert locate(lat, lng, boundary_index).assembly.name == "Phulbani (ST)"

    def test_outside_everything(self, boundary_index):
        lat, lng = OUTSIDE_POINT
        result = locate(lat, lng, boundary_index)
        assert result.assembly is None
        assert result.parliamentary is None

    def test_unloaded_index_never_raises(self, empty_index):
        lat, lng = KANDHAMAL_POINT
        result = locate(lat, lng, empty_index)
        assert result.assembly is None
        assert result.parliamentary is None

    def test_unloaded_collection_ignored_even_with_features(self, boundary_index):
        boundary_index.parliamentary_loaded = False
        lat, lng = KANDHAMAL_POINT
        result = locate(lat, lng, boundary_index)
        assert result.assembly is not None
        assert result.parliamentary is None

    def test_first_match_wins_on_overlap(self, assembly_features, parliamentary_features):
        overlapping = {
            "type": "Feature",
            "properties": {"ST_NAME": "Odisha", "AC_NAME": "Overlap"},
            "geometry": {"type": "Polygon", "coordinates": [_square(84.0, 20.0, 86.0, 22.0)]},
        }
        index = BoundaryIndex(
            assembly=parse_features(assembly_features + [overlapping], ASSEMBLY),
            parliamentary=parse_features(parliamentary_features, PARLIAMENTARY),
            assembly_loaded=True,
            parliamentary_loaded=True,
        )
        lat, lng = KANDHAMAL_POINT
        assert locate(lat, lng, index).assembly.name == "Kandhamal SC"

        index.assembly.reverse()
        assert locate(lat, lng, index).assembly.name == "Overlap"

    @pytest.mark.parametrize("lat,lng", [(91.0, 85.0), (-91.0, 85.0), (20.0, 181.0), (20.0, -181.0)])
    def test_out_of_range_coordinate_raises(self, boundary_index, lat, lng):
        with pytest.raises(ValueError, match="out of range"):
            locate(lat, lng, boundary_index)
