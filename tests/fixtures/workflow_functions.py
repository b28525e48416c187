"""
Funções usadas pelos planos de teste.

Vivem em um módulo importável para que os backends `processes` e
`staged` consigam enviá-las aos workers.
"""

import time
import warnings

import numpy as np
import pandas as pd


def make_data(n):
    """Amostra normal com `n` linhas (depende da seed do target)."""
    return pd.DataFrame({"x": np.random.normal(size=n), "g": np.arange(n) % 3})


def double(df):
    out = df.copy()
    out["x"] = out["x"] * 2
    return out


def summarize(df):
    return float(_rounded(df["x"].sum()))


def _rounded(value):
    return round(float(value), 10)


def slow_square(x, delay=0.05):
    time.sleep(delay)
    return x * x


def slow_random(delay=0.2):
    time.sleep(delay)
    return float(np.random.rand())


def add(*values):
    return sum(values)


def explode(x):
    raise ValueError(f"cannot process {x!r}")


def noisy(x):
    warnings.warn("noisy is deprecated", UserWarning)
    return x + 1


def slow_noisy(delay=0.2):
    time.sleep(delay)
    warnings.warn("slow_noisy is deprecated", UserWarning)
    return 1


def slow_quiet(delay=0.4):
    time.sleep(delay)
    return 2


def outer(x):
    return inner(x) + 1


def inner(x):
    return x * 10


def is_even(n):
    return True if n == 0 else is_odd(n - 1)


def is_odd(n):
    return False if n == 0 else is_even(n - 1)


def write_text(path, text):
    with open(path, "w", encoding="utf-8") as f:
        f.write(text)
    return path


def count_chars(path):
    with open(path, encoding="utf-8") as f:
        return len(f.read())


def read_numbers(path):
    return pd.read_csv(path)["x"].tolist()
