"""
Triggers — regras que decidem quando um target está desatualizado.

Cada flag habilita uma razão de rebuild:

    - command → o comando (normalizado) mudou
    - depend  → alguma dependência (target ou import) mudou
    - file    → algum file_in mudou, ou algum file_out mudou/sumiu
    - seed    → a seed do target mudou
    - missing → não existe valor no cache

Flags com valor None herdam o default configurado em `trigger.*`.

Além das flags:

    - condition: bool ou código Python; verdadeiro força o rebuild
    - change: código Python; o rebuild ocorre quando o hash do valor muda
    - mode:
        whitelist → rebuild se qualquer razão ocorrer ou condition for verdadeira
        blacklist → condition falsa impede o rebuild; verdadeira deixa as
                    demais razões decidirem
        condition → apenas condition decide (um target nunca construído
                    é construído mesmo assim)

Em todos os modos, um target nunca construído (ou cuja última build
falhou) é sempre construído; um target cujo valor sumiu do cache é
reconstruído quando a flag `missing` está ativa.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Dict, List, Optional, Union

from drakeflow.core.analysis.code import parse_code
from drakeflow.core.exceptions import PlanValidationError


TRIGGER_MODES = ("whitelist", "blacklist", "condition")


@dataclass(frozen=True)
class Trigger:
    command: Optional[bool] = None
    depend: Optional[bool] = None
    file: Optional[bool] = None
    seed: Optional[bool] = None
    missing: Optional[bool] = None
    condition: Union[bool, str] = False
    change: Optional[str] = None
    mode: str = "whitelist"

    def resolve(self, defaults: Dict[str, bool]) -> "Trigger":
        """Preenche as flags None com os defaults configurados."""
        return replace(
            self,
            command=defaults.get("command", True) if self.command is None else self.command,
            depend=defaults.get("depend", True) if self.depend is None else self.depend,
            file=defaults.get("file", True) if self.file is None else self.file,
            seed=defaults.get("seed", True) if self.seed is None else self.seed,
            missing=defaults.get("missing", True) if self.missing is None else self.missing,
        )

    def codes(self) -> List[str]:
        """Trechos de código cujas dependências pertencem ao target."""
        out: List[str] = []
        if isinstance(self.condition, str):
            out.append(self.condition)
        if self.change is not None:
            out.append(self.change)
        return out


def trigger(
    *,
    command: Optional[bool] = None,
    depend: Optional[bool] = None,
    file: Optional[bool] = None,
    seed: Optional[bool] = None,
    missing: Optional[bool] = None,
    condition: Union[bool, str] = False,
    change: Optional[str] = None,
    mode: str = "whitelist",
) -> Trigger:
    """Constrói e valida um Trigger para uso em `target(..., trigger=...)`."""
    if mode not in TRIGGER_MODES:
        raise PlanValidationError(
            message=f"Modo de trigger inválido: {mode!r}",
            details={"mode": mode, "allowed": list(TRIGGER_MODES)},
        )
    for name, flag in (("command", command), ("depend", depend), ("file", file), ("seed", seed), ("missing", missing)):
        if flag is not None and not isinstance(flag, bool):
            raise PlanValidationError(
                message=f"trigger.{name} deve ser booleano ou None",
                details={"flag": name, "value": repr(flag)},
            )
    if not isinstance(condition, (bool, str)):
        raise PlanValidationError(
            message="trigger.condition deve ser booleano ou código Python",
            details={"type": type(condition).__name__},
        )
    if change is not None and not isinstance(change, str):
        raise PlanValidationError(
            message="trigger.change deve ser código Python",
            details={"type": type(change).__name__},
        )

    t = Trigger(
        command=command,
        depend=depend,
        file=file,
        seed=seed,
        missing=missing,
        condition=condition,
        change=change,
        mode=mode,
    )
    for code in t.codes():
        parse_code(code)
    return t
