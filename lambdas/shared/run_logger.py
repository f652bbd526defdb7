# lambdas/shared/run_logger.py
import json
from typing import Any, List


def _render(arg: Any) -> str:
    if isinstance(arg, (dict, list, tuple)):
        return json.dumps(arg, ensure_ascii=False, default=str)
    return str(arg)


class RunLogger:
    """
    Request-scoped logger. Everything goes to stdout (CloudWatch picks it up);
    with collect=True every line is also kept so debug responses can return it.
    """

    def __init__(self, collect: bool = False):
        self.collect = collect
        self._lines: List[str] = []

    def _emit(self, prefix: str, args: tuple) -> None:
        line = prefix + " ".join(_render(a) for a in args)
        print(line)
        if self.collect:
            self._lines.append(line)

    def log(self, *args: Any) -> None:
        self._emit("", args)

    def warn(self, *args: Any) -> None:
        self._emit("[WARN] ", args)

    def error(self, *args: Any) -> None:
        self._emit("[ERROR] ", args)

    @property
    def lines(self) -> List[str]:
        return list(self._lines)
