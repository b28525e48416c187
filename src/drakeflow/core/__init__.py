"""
Core do drakeflow.

Componentes, em ordem de dependência:
    - plan         → modelo tabular de targets, triggers e transformações
    - analysis     → análise estática de comandos e funções
    - graph        → grafo de dependências (targets, imports, arquivos)
    - hashing      → fingerprints de valores, código e arquivos
    - cache        → persistência de valores, metadata e runs
    - engine       → planejamento, staleness, backends e scheduler
    - config       → configuração declarativa e settings efetivos
    - pipeline     → contexto de run e tipos de resultado
    - traceability → Manifest e Event Log por run

Limites explícitos:
    - Não renderiza relatórios nem visualizações do grafo
    - Não depende de notebooks ou CLI
"""
