"""
Frontend: record call signatures from live Python execution.

Uses sys.settrace to see every Python-level call in the current thread. On
the 'call' event the bound arguments are read from the new frame; on the
matching 'return' event the returned value's type completes the Signature.
Calls that end by propagating an exception are not recorded.
"""

import inspect
import logging
import os
import runpy
import sys
import sysconfig
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from ..signature import MethodInfo, ParameterInfo, ParamKind, Signature

logger = logging.getLogger(__name__)

_PACKAGE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
_STDLIB_DIR = sysconfig.get_paths()["stdlib"]

# Frames of these kinds return more than once (or never to the caller).
_SKIPPED_FLAGS = inspect.CO_GENERATOR | inspect.CO_COROUTINE | inspect.CO_ASYNC_GENERATOR


def type_name(value: Any) -> str:
    """Runtime type symbol: `int`, `NoneType`, `pathlib.PosixPath`, ..."""
    cls = type(value)
    if cls.__module__ == "builtins":
        return cls.__qualname__
    return f"{cls.__module__}.{cls.__qualname__}"


def default_filter(filename: str) -> bool:
    """Trace user code only: no stdlib, installed packages, frozen modules or sigcontract itself."""
    if not filename or filename.startswith("<"):
        return False
    path = os.path.abspath(filename)
    if path.startswith(_PACKAGE_DIR + os.sep) or path.startswith(_STDLIB_DIR + os.sep):
        return False
    return "site-packages" not in path and "dist-packages" not in path


def pattern_filter(include: Sequence[str] = (), exclude: Sequence[str] = ()) -> Callable[[str], bool]:
    """
    Filename predicate from substring patterns. An empty include list falls
    back to `default_filter`.
    """
    def accept(filename: str) -> bool:
        if any(pattern in filename for pattern in exclude):
            return False
        if include:
            return any(pattern in filename for pattern in include)
        return default_filter(filename)
    return accept


@dataclass
class _PendingCall:
    method: MethodInfo
    params: Tuple[ParameterInfo, ...]
    arg_types: Tuple[str, ...]
    raised: bool = False


def _describe_parameters(code) -> List[ParameterInfo]:
    positional = code.co_argcount
    keyword_only = code.co_kwonlyargcount
    names = code.co_varnames
    params = [ParameterInfo(name) for name in names[:positional]]
    params.extend(
        ParameterInfo(name, ParamKind.KEYWORD_ONLY)
        for name in names[positional:positional + keyword_only]
    )
    index = positional + keyword_only
    if code.co_flags & inspect.CO_VARARGS:
        params.append(ParameterInfo(names[index], ParamKind.VAR_POSITIONAL))
        index += 1
    if code.co_flags & inspect.CO_VARKEYWORDS:
        params.append(ParameterInfo(names[index], ParamKind.VAR_KEYWORD))
    return params


@dataclass
class SignatureTracer:
    """
    Context manager collecting Signatures of traced calls.

    Only the thread that enters the context is traced. The previous trace
    function is restored on exit.
    """
    include: Callable[[str], bool] = default_filter
    signatures: List[Signature] = field(default_factory=list)
    _pending: Dict[int, _PendingCall] = field(default_factory=dict, repr=False)
    _previous: Any = field(default=None, repr=False)

    def __enter__(self) -> 'SignatureTracer':
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.stop()
        return False

    def start(self) -> None:
        self._previous = sys.gettrace()
        sys.settrace(self._trace_call)

    def stop(self) -> None:
        sys.settrace(self._previous)
        self._previous = None
        if self._pending:
            logger.debug("%d traced call(s) never returned", len(self._pending))
            self._pending.clear()

    def _trace_call(self, frame, event, arg):
        if event != "call":
            return None
        code = frame.f_code
        if code.co_name.startswith("<") or code.co_flags & _SKIPPED_FLAGS:
            return None
        if not self.include(code.co_filename):
            return None

        params = _describe_parameters(code)
        local_vars = frame.f_locals
        self._pending[id(frame)] = _PendingCall(
            method=MethodInfo(
                module=frame.f_globals.get("__name__", ""),
                qualname=getattr(code, "co_qualname", code.co_name),
            ),
            params=tuple(params),
            arg_types=tuple(type_name(local_vars.get(p.name)) for p in params),
        )
        return self._trace_frame

    def _trace_frame(self, frame, event, arg):
        pending = self._pending.get(id(frame))
        if pending is None:
            return None
        if event == "exception":
            pending.raised = True
        elif event == "line":
            pending.raised = False
        elif event == "return":
            del self._pending[id(frame)]
            if not pending.raised:
                self.signatures.append(Signature(
                    params=pending.params,
                    arg_types=pending.arg_types,
                    return_type=type_name(arg),
                    method=pending.method,
                ))
        return self._trace_frame

    def feed(self, registry) -> int:
        """Add the recorded signatures to a ContractRegistry."""
        return registry.add_all(self.signatures)


def trace_script(path: Path, tracer: Optional[SignatureTracer] = None,
                 argv: Sequence[str] = ()) -> SignatureTracer:
    """
    Run a Python script as __main__ under a tracer.

    sys.exit() inside the script ends the run normally; any other exception
    propagates after tracing stops.
    """
    tracer = tracer if tracer is not None else SignatureTracer()
    saved_argv = sys.argv
    sys.argv = [str(path), *argv]
    try:
        with tracer:
            runpy.run_path(str(path), run_name="__main__")
    except SystemExit as e:
        logger.debug("%s exited with %s", path, e.code)
    finally:
        sys.argv = saved_argv
    logger.info("traced %d call(s) in %s", len(tracer.signatures), path)
    return tracer
