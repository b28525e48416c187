"""
E2E — workflow de análise de dados com drakeflow.

Valida o core de ponta a ponta:
- dataset sintético em CSV lido com file_in
- limpeza, agregação e simulações expandidas com map_/combine
- relatório escrito com file_out e relido por outro target
- rebuild incremental após mudança do dataset
- manifest de cada run salvo no cache
"""

from __future__ import annotations

from pathlib import Path

import numpy as np
import pandas as pd

from drakeflow import (
    combine,
    file_in,
    file_out,
    load_settings,
    make,
    make_plan,
    map_,
    outdated,
    readd,
    target,
)
from drakeflow.core.cache.store import Cache
from drakeflow.core.traceability.manifest import load_manifest


def clean_rows(df):
    """Remove linhas sem valor e normaliza o nome dos grupos."""
    out = df.dropna(subset=["value"]).copy()
    out["group"] = out["group"].str.strip().str.lower()
    return out


def group_means(df):
    return df.groupby("group", as_index=False)["value"].mean()


def bootstrap_mean(df, n):
    idx = np.random.randint(0, len(df), size=n)
    return float(df["value"].to_numpy()[idx].mean())


def collect(values):
    return sorted(values)


def write_summary(summary, path):
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    summary.to_csv(path, index=False)
    return path


def count_rows(path):
    return len(pd.read_csv(path))


def _write_dataset(path: Path, extra_rows: int = 0) -> None:
    rows = {
        "group": [" A", "b", "B ", "a", "c", None],
        "value": [1.0, 2.0, 3.0, None, 5.0, 6.0],
    }
    df = pd.DataFrame(rows)
    if extra_rows:
        df = pd.concat([df, pd.DataFrame({"group": ["d"] * extra_rows, "value": [7.0] * extra_rows})])
    path.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(path, index=False)


def _plan():
    return make_plan(
        raw="pd.read_csv(file_in('data/raw.csv'))",
        data="clean_rows(raw.dropna(subset=['group']))",
        means="group_means(data)",
        boot=target("bootstrap_mean(data, size)", transform=map_(size=[10, 50])),
        boots=target("collect(boot)", transform=combine("boot")),
        report="write_summary(means, file_out('out/summary.csv'))",
        report_rows="count_rows(file_in('out/summary.csv'))",
    )


def _envir():
    return {
        "pd": pd,
        "np": np,
        "clean_rows": clean_rows,
        "group_means": group_means,
        "bootstrap_mean": bootstrap_mean,
        "collect": collect,
        "write_summary": write_summary,
        "count_rows": count_rows,
        "file_in": file_in,
        "file_out": file_out,
    }


def test_workflow_end_to_end(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)
    _write_dataset(tmp_path / "data" / "raw.csv")
    settings = load_settings({"cache": {"path": str(tmp_path / ".drakeflow")}})
    cache = Cache(settings.cache_path)

    plan = _plan()
    assert list(plan["target"]) == ["raw", "data", "means", "boot_10", "boot_50", "boots", "report", "report_rows"]

    first = make(plan, envir=_envir(), config=settings)
    assert first.ok, first.to_frame()
    assert sorted(first.built) == sorted(plan["target"])
    assert first.order.index("report") < first.order.index("report_rows")

    means = readd("means", cache=cache)
    assert means.set_index("group")["value"].to_dict() == {"a": 1.0, "b": 2.5, "c": 5.0}
    assert readd("report_rows", cache=cache) == 3
    assert len(readd("boots", cache=cache)) == 2

    # segunda run: nada a fazer
    assert outdated(plan, envir=_envir(), config=settings) == []
    second = make(plan, envir=_envir(), config=settings)
    assert second.built == []

    # novo grupo no dataset: tudo downstream de raw é reconstruído
    _write_dataset(tmp_path / "data" / "raw.csv", extra_rows=2)
    third = make(plan, envir=_envir(), config=settings)
    assert third["raw"].reasons == ["file"]
    assert "report_rows" in third.built
    assert readd("report_rows", cache=cache) == 4

    runs = cache.list_runs()
    assert runs == [first.run_id, second.run_id, third.run_id]
    manifest = load_manifest(cache.run_path(third.run_id))
    assert manifest.run["summary"]["failed"] == 0
    assert manifest.targets["raw"]["reasons"] == ["file"]


def test_workflow_is_reproducible_across_caches(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)
    _write_dataset(tmp_path / "data" / "raw.csv")

    make(_plan(), envir=_envir(), cache=tmp_path / "c1")
    make(_plan(), envir=_envir(), cache=tmp_path / "c2")

    assert readd("boots", cache=tmp_path / "c1") == readd("boots", cache=tmp_path / "c2")
