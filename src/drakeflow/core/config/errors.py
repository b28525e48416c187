"""
Exceções canônicas da camada de configuração do drakeflow.

Este módulo define a hierarquia oficial de exceções utilizadas durante
o carregamento, merge e resolução dos settings do engine.

Invariantes:
    - Todas as exceções de configuração herdam de `ConfigError`
    - Nenhuma exceção representa erro de build de target

Limites explícitos:
    - Não executa workflow
    - Não realiza fallback ou recovery
"""


class ConfigError(Exception):
    """
    Exceção base para erros relacionados à configuração do drakeflow.

    Permite captura genérica de erros de configuração e distinção clara
    entre falhas estruturais e falhas de build.
    """


class DefaultsNotFoundError(ConfigError):
    """
    Arquivo de configuração base (defaults) não encontrado.

    O arquivo de defaults é obrigatório quando informado; o loader não
    tenta inferir ou criar defaults automaticamente.
    """


class UnsupportedConfigFormatError(ConfigError):
    """
    Formato do arquivo de configuração não suportado.

    Formatos suportados (v1):
        - YAML (.yaml, .yml)
        - JSON (.json)
    """


class InvalidConfigRootTypeError(ConfigError):
    """Conteúdo raiz da configuração não é um dicionário (`dict`)."""


class ConfigTypeConflictError(ConfigError):
    """
    Conflito de tipos durante o deep-merge.

    Exemplo de conflito:
        - base:     {"engine": {"jobs": 1}}
        - override: {"engine": "processes"}

    Nenhum merge parcial é produzido em caso de conflito.
    """


class InvalidSettingError(ConfigError):
    """
    Valor de setting fora do domínio aceito pelo engine.

    Exemplos:
        - engine.jobs < 1
        - engine.memory_strategy desconhecida
        - trigger.<nome> não booleano
    """
