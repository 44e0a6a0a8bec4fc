import asyncio
import os
import time

import pytest

from tools.zerodrift.cache import CacheManager
from tools.zerodrift.pipeline import RunContext, ValidationPipeline
from tools.zerodrift.runners import BaseCommandRunner, CommandOutcome


CONFIG_FILES = {
    "eslint.config.js": "export default [];\n",
    ".prettierrc": "{\"semi\": true}\n",
    "package.json": "{\"name\": \"demo\"}\n",
    "tsconfig.json": "{\"compilerOptions\": {}}\n",
    "tsconfig.build.json": "{\"extends\": \"./tsconfig.json\"}\n",
    "apps/backend-api/tsconfig.json": "{\"extends\": \"../../tsconfig.json\"}\n",
    "vitest.config.ts": "export default {};\n",
    "turbo.json": "{\"pipeline\": {}}\n",
}


class RecordingRunner(BaseCommandRunner):
    """Fake runner: records every spawned command instead of running it."""

    def __init__(self, failing=(), delays=None):
        self.commands = []
        self.failing = set(failing)
        self.delays = dict(delays or {})
        self.in_flight = 0
        self.max_in_flight = 0

    async def run(self, command):
        self.commands.append(command)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            delay = float(self.delays.get(command, 0.0))
            await asyncio.sleep(delay)
        finally:
            self.in_flight -= 1
        exit_code = 1 if command in self.failing else 0
        return CommandOutcome(
            command=command,
            exit_code=exit_code,
            stdout="out: {}".format(command),
            stderr="boom: {}".format(command) if exit_code else "",
            duration_s=delay,
        )


def write_file(root, rel, text):
    path = os.path.join(str(root), rel)
    parent = os.path.dirname(path)
    if parent:
        os.makedirs(parent, exist_ok=True)
    with open(path, "w", encoding="utf-8", newline="\n") as handle:
        handle.write(text)
    return path


def bump_mtime(path, seconds=10.0):
    stat = os.stat(path)
    os.utime(path, ns=(stat.st_atime_ns, stat.st_mtime_ns + int(seconds * 1000000000)))


def run_pipeline(repo_root, selection, runner, force=False, trace=False):
    context = RunContext(repo_root=str(repo_root), started=time.perf_counter(), force=force, trace=trace)
    pipeline = ValidationPipeline(
        context,
        cache_manager=CacheManager(str(repo_root), trace=trace),
        runner=runner,
    )
    return asyncio.run(pipeline.run(selection))


@pytest.fixture
def repo(tmp_path):
    for rel, text in CONFIG_FILES.items():
        write_file(tmp_path, rel, text)
    return tmp_path
