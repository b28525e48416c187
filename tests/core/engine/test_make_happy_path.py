# tests/core/engine/test_make_happy_path.py
"""
Testes de caminho feliz do `make`.

Os testes asseguram que:
- todos os targets são construídos em ordem topológica na primeira run
- uma segunda run sem mudanças não reconstrói nada
- valores são reprodutíveis após limpar o cache (seed por target)
- cada run deixa um manifest persistido no cache
"""

import pandas as pd

from drakeflow import clean, make, make_plan, readd
from drakeflow.core.pipeline.types import TargetStatus
from tests.fixtures import workflow_functions as wf


def _plan():
    return make_plan(
        total="summarize(doubled)",
        doubled="double(raw)",
        raw="make_data(10)",
    )


def test_first_run_builds_everything(envir, tmp_cache):
    result = make(_plan(), envir=envir, cache=tmp_cache)

    assert result.ok
    assert result.order == ["raw", "doubled", "total"]
    assert result.built == ["raw", "doubled", "total"]
    assert result["raw"].reasons == ["missing"]
    assert isinstance(readd("raw", cache=tmp_cache), pd.DataFrame)
    assert readd("total", cache=tmp_cache) == round(float(readd("doubled", cache=tmp_cache)["x"].sum()), 10)


def test_second_run_is_up_to_date(envir, tmp_cache):
    make(_plan(), envir=envir, cache=tmp_cache)
    again = make(_plan(), envir=envir, cache=tmp_cache)

    assert again.built == []
    assert again.up_to_date == ["raw", "doubled", "total"]
    assert again["total"].status == TargetStatus.UP_TO_DATE
    assert again.summary() == {"built": 0, "up_to_date": 3, "failed": 0, "skipped": 0}


def test_values_are_reproducible_after_clean(envir, tmp_cache):
    make(_plan(), envir=envir, cache=tmp_cache)
    first = readd("total", cache=tmp_cache)

    assert clean(cache=tmp_cache) == ["doubled", "raw", "total"]
    rebuilt = make(_plan(), envir=envir, cache=tmp_cache)

    assert rebuilt.built == ["raw", "doubled", "total"]
    assert readd("total", cache=tmp_cache) == first


def test_requested_targets_build_only_upstream(envir, tmp_cache):
    result = make(_plan(), envir=envir, cache=tmp_cache, targets=["doubled"])

    assert result.order == ["raw", "doubled"]
    assert tmp_cache.has_value("total") is False


def test_each_run_saves_a_manifest(envir, tmp_cache):
    first = make(_plan(), envir=envir, cache=tmp_cache)
    second = make(_plan(), envir=envir, cache=tmp_cache)

    assert tmp_cache.list_runs() == [first.run_id, second.run_id]
    assert first.manifest.run["summary"]["built"] == 3
    assert first.manifest.targets["raw"]["status"] == "built"


def test_result_frame(envir, tmp_cache):
    frame = make(_plan(), envir=envir, cache=tmp_cache).to_frame()

    assert list(frame["target"]) == ["raw", "doubled", "total"]
    assert set(frame["status"]) == {"built"}


def test_helper_reached_through_a_function_is_available_to_commands(tmp_cache):
    plan = make_plan(x="inner(2)", y="outer(1)")
    result = make(plan, envir={"outer": wf.outer}, cache=tmp_cache)

    assert result.ok, result.to_frame()
    assert readd("x", cache=tmp_cache) == 20
    assert readd("y", cache=tmp_cache) == 11
