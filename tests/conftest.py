# tests/conftest.py
"""
Fixtures compartilhados para testes do drakeflow.

Este módulo define fixtures reutilizáveis que fornecem:
- configurações YAML semelhantes às de um projeto real
- um cache isolado por teste (diretório temporário)
- um ambiente (`envir`) com as funções de `tests.fixtures.workflow_functions`
- um RunContext determinístico

Decisões arquiteturais:
    - Funções usadas pelos planos ficam em um módulo importável, para
      que os backends de processos consigam serializá-las por referência
    - Cada teste recebe seu próprio cache; nenhum estado é compartilhado
    - Imports do core são realizados de forma lazy para melhorar a
      clareza de erros durante falhas

Invariantes:
    - Nenhuma fixture executa `make`
    - Fixtures que tocam o filesystem usam apenas `tmp_path`
"""

from datetime import datetime, timezone

import pytest

from tests.fixtures import workflow_functions


# =====================================================
# Config
# =====================================================

@pytest.fixture
def project_like_config_defaults_yaml() -> str:
    """
    YAML de configuração padrão (defaults) semelhante ao uso real.

    Representa o conteúdo típico de um `drakeflow.defaults.yaml`, base
    canônica sobre a qual configurações locais são aplicadas via deep-merge.

    Returns:
        str: Conteúdo YAML representando a configuração padrão.
    """
    return """\
cache:
  path: .drakeflow
engine:
  jobs: 1
  parallelism: loop
  keep_going: false
targets:
  report:
    enabled: true
"""


@pytest.fixture
def project_like_config_local_yaml() -> str:
    """
    YAML de configuração local (override) semelhante ao uso real.

    Contém apenas overrides: paralelismo e desabilitação de um target.

    Returns:
        str: Conteúdo YAML representando overrides locais.
    """
    return """\
engine:
  jobs: 4
  parallelism: threads
targets:
  report:
    enabled: false
"""


# =====================================================
# Cache e ambiente
# =====================================================

@pytest.fixture
def tmp_cache(tmp_path):
    """Cache vazio e isolado em `tmp_path/cache`."""
    from drakeflow.core.cache.store import Cache

    return Cache(tmp_path / "cache")


@pytest.fixture
def envir() -> dict:
    """
    Ambiente com as funções públicas de `workflow_functions`.

    Apenas nomes sem underscore são expostos; módulos auxiliares
    (`np`, `pd`) entram com o mesmo nome usado nos comandos.
    """
    names = {k: v for k, v in vars(workflow_functions).items() if not k.startswith("_")}
    return names


@pytest.fixture
def dummy_ctx():
    """RunContext com run_id e timestamp fixos."""
    from drakeflow.core.pipeline.context import RunContext

    return RunContext(
        run_id="run-test-001",
        created_at=datetime(2026, 1, 16, 0, 0, 0, tzinfo=timezone.utc).isoformat(),
        config={"engine": {"jobs": 1}},
        meta={"source": "pytest"},
    )
