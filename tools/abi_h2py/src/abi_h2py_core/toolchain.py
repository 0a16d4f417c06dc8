from __future__ import annotations

import os
import shlex
import subprocess
import tempfile
from pathlib import Path

from ._core_base import ToolchainError, resolve_compiler


def format_command(command: list[str]) -> str:
    return " ".join(shlex.quote(item) for item in command)


class ToolchainRunner:
    """Compiles, links and runs a probe program with the host C toolchain.

    Every stage is a single blocking subprocess call. Intermediate files live
    in a temporary directory that is removed whether the probe succeeds or not.
    """

    def __init__(
        self,
        compiler: str | None = None,
        *,
        compiler_candidates: list[str] | None = None,
        cflags: list[str] | None = None,
        ldflags: list[str] | None = None,
        include_dirs: list[str] | None = None,
    ) -> None:
        self.compiler = compiler
        self.compiler_candidates = list(compiler_candidates or [])
        self.cflags = list(cflags or [])
        self.ldflags = list(ldflags or [])
        self.include_dirs = list(include_dirs or [])
        self.commands: list[str] = []
        self._resolved: str | None = None

    def resolve(self) -> str:
        if self._resolved is None:
            self._resolved = resolve_compiler(self.compiler, self.compiler_candidates)
        return self._resolved

    def _execute(self, stage: str, command: list[str]) -> subprocess.CompletedProcess[str]:
        self.commands.append(format_command(command))
        try:
            return subprocess.run(command, capture_output=True, text=True, check=True)
        except subprocess.CalledProcessError as exc:
            message = exc.stderr.strip() or exc.stdout.strip() or f"exit status {exc.returncode}"
            raise ToolchainError(stage, f"command={format_command(command)}; error={message}") from exc
        except OSError as exc:
            raise ToolchainError(stage, f"command={format_command(command)}; error={exc}") from exc

    def compile(self, source_path: Path, object_path: Path) -> Path:
        command = [self.resolve(), "-c", str(source_path), "-o", str(object_path)]
        for include_dir in self.include_dirs:
            command.extend(["-I", include_dir])
        command.extend(self.cflags)
        self._execute("compile", command)
        return object_path

    def link(self, object_path: Path, executable_path: Path) -> Path:
        command = [self.resolve(), str(object_path), "-o", str(executable_path)]
        command.extend(self.ldflags)
        self._execute("link", command)
        return executable_path

    def run(self, executable_path: Path) -> str:
        proc = self._execute("run", [str(executable_path)])
        return proc.stdout

    def run_probe(self, source_text: str) -> str:
        with tempfile.TemporaryDirectory(prefix="abi_h2py_probe_") as temp_dir:
            temp_path = Path(temp_dir)
            source_path = temp_path / "probe.c"
            object_path = temp_path / ("probe.obj" if os.name == "nt" else "probe.o")
            executable_path = temp_path / ("probe.exe" if os.name == "nt" else "probe")

            source_path.write_text(source_text, encoding="utf-8")
            self.compile(source_path, object_path)
            self.link(object_path, executable_path)
            return self.run(executable_path)
