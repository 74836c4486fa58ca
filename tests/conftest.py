import pytest

import hack_run
import vm_translator

# Типичное начальное состояние: стек с 256, сегменты где-то выше.
REGISTERS = {0: 256, 1: 300, 2: 400, 3: 3000, 4: 4000}


@pytest.fixture
def machine():
    # Транслирует VM-текст, ассемблирует и выполняет. Возвращает RAM.
    def run(vm_text, ram=None, max_steps=100_000):
        lines = vm_translator.translate_program(vm_translator.to_ir(vm_text))
        rom = hack_run.assemble(vm_translator.render(lines))
        mem = [0] * hack_run.RAM_SIZE
        for addr, value in {**REGISTERS, **(ram or {})}.items():
            mem[addr] = value
        hack_run.run_program(rom, mem, max_steps)
        return mem
    return run
