import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

import click

# Сегменты, адрес которых считается как база (регистр) + индекс.
# constant обрабатывается отдельно: индекс сам является значением.
SEGMENTS = {
    "local": "LCL",
    "argument": "ARG",
    "this": "THIS",
    "that": "THAT",
}

# Сегменты стандартной модели Hack, которые транслятор не поддерживает.
UNSUPPORTED_SEGMENTS = ("static", "pointer", "temp")

# Бинарные операции: одна строка шаблона отличается только оператором.
BINARY_OPS = {"add": "M+D", "sub": "M-D", "and": "M&D", "or": "M|D"}
UNARY_OPS = {"neg": "-M", "not": "!M"}
COMPARE_OPS = {"eq": "JEQ", "gt": "JGT", "lt": "JLT"}
ARITHMETIC_OPS = (*BINARY_OPS, *UNARY_OPS, *COMPARE_OPS)

# Сколько аргументов ожидает каждая команда (кроме арифметики: у неё 0).
ARITY = {
    "push": 2, "pop": 2,
    "label": 1, "goto": 1, "if-goto": 1,
    "function": 2, "call": 2, "return": 0,
}

# Регистры кадра в порядке сохранения при call.
FRAME = ("LCL", "ARG", "THIS", "THAT")


@dataclass(frozen=True)
class Push:
    segment: str
    index: int


@dataclass(frozen=True)
class Pop:
    segment: str
    index: int


@dataclass(frozen=True)
class Arithmetic:
    op: str


@dataclass(frozen=True)
class Label:
    name: str


@dataclass(frozen=True)
class Goto:
    name: str


@dataclass(frozen=True)
class IfGoto:
    name: str


@dataclass(frozen=True)
class Function:
    name: str
    n_locals: int


@dataclass(frozen=True)
class Call:
    name: str
    n_args: int


@dataclass(frozen=True)
class Return:
    pass


Command = Union[Push, Pop, Arithmetic, Label, Goto, IfGoto, Function, Call, Return]


@dataclass
class TranslatorContext:
    # Состояние одного прогона трансляции.
    # label_counter общий для меток сравнений и меток возврата из call,
    # поэтому любые две сгенерированные метки различны.
    # current_function нужен только как префикс метки возврата.
    label_counter: int = 0
    current_function: str = ""

    def next_label(self) -> int:
        k = self.label_counter
        self.label_counter += 1
        return k


def clean(s: str) -> str:
    # Убираем комментарий // и лишние пробелы.
    return s.split("//", 1)[0].strip()


def num(t: str, n: int) -> int:
    # Только десятичная запись: 7, -3, +12 (без 1_000, 0x10 и т.п.).
    if not re.fullmatch(r"[+-]?[0-9]+", t):
        raise ValueError(f"строка {n}: ожидалось целое число, получено {t!r}")
    return int(t)


def segment(t: str, n: int, pop: bool = False) -> str:
    if t in UNSUPPORTED_SEGMENTS:
        raise ValueError(f"строка {n}: сегмент {t} не поддерживается")
    if t == "constant" and pop:
        raise ValueError(f"строка {n}: pop в сегмент constant невозможен")
    if t != "constant" and t not in SEGMENTS:
        raise ValueError(f"строка {n}: неизвестный сегмент {t}")
    return t


def parse_line(line: str, n: int) -> Optional[Command]:
    # Этап 1: одна строка VM-кода -> команда (IR).
    line = clean(line)
    if not line:
        return None

    parts = line.split()
    cmd, args = parts[0], parts[1:]
    if cmd not in ARITY and cmd not in ARITHMETIC_OPS:
        raise ValueError(f"строка {n}: неизвестная команда {cmd}")
    if len(args) != ARITY.get(cmd, 0):
        raise ValueError(f"строка {n}: неверно аргументов у {cmd}")

    if cmd in ARITHMETIC_OPS:
        return Arithmetic(cmd)
    if cmd == "push":
        return Push(segment(args[0], n), num(args[1], n))
    if cmd == "pop":
        return Pop(segment(args[0], n, pop=True), num(args[1], n))
    if cmd == "label":
        return Label(args[0])
    if cmd == "goto":
        return Goto(args[0])
    if cmd == "if-goto":
        return IfGoto(args[0])
    if cmd == "function":
        return Function(args[0], num(args[1], n))
    if cmd == "call":
        return Call(args[0], num(args[1], n))
    return Return()


def to_ir(text: str) -> list:
    # Текст -> список команд (IR).
    return [cmd for cmd, _ in to_ir_with_source(text)]


def to_ir_with_source(text: str) -> list:
    # Пары (команда, исходная строка без комментария) для --annotate.
    prog = []
    for i, line in enumerate(text.splitlines(), 1):
        cmd = parse_line(line, i)
        if cmd is not None:
            prog.append((cmd, clean(line)))
    return prog


# Шаблоны. Все функции ниже чистые: возвращают список строк и ничего не меняют.

def push_d() -> list:
    # *SP = D; SP++
    return ["@SP", "A=M", "M=D", "@SP", "M=M+1"]


def resolve_address(seg: str, index: int) -> list:
    # Загружает значение (constant) или эффективный адрес base+index в D.
    if seg == "constant":
        return [f"@{index}", "D=A"]
    return [f"@{SEGMENTS[seg]}", "D=M", f"@{index}", "D=D+A"]


def push_template(seg: str, index: int) -> list:
    if seg == "constant":
        return resolve_address(seg, index) + push_d()
    return [f"@{SEGMENTS[seg]}", "D=M", f"@{index}", "A=D+A", "D=M"] + push_d()


def pop_template(seg: str, index: int) -> list:
    # Адрес надо положить в R13 до уменьшения SP: дальше D занят значением.
    return resolve_address(seg, index) + [
        "@R13", "M=D",
        "@SP", "AM=M-1", "D=M",
        "@R13", "A=M", "M=D",
    ]


def binary_template(comp: str) -> list:
    return ["@SP", "AM=M-1", "D=M", "A=A-1", f"M={comp}"]


def unary_template(comp: str) -> list:
    return ["@SP", "A=M-1", f"M={comp}"]


def compare_template(jump: str, label: str) -> list:
    # true = -1 (все единицы), false = 0
    return [
        "@SP", "AM=M-1", "D=M", "A=A-1", "D=M-D",
        f"@{label}_TRUE", f"D;{jump}",
        "@SP", "A=M-1", "M=0",
        f"@{label}_END", "0;JMP",
        f"({label}_TRUE)",
        "@SP", "A=M-1", "M=-1",
        f"({label}_END)",
    ]


def label_template(name: str) -> list:
    return [f"({name})"]


def goto_template(name: str) -> list:
    return [f"@{name}", "0;JMP"]


def if_goto_template(name: str) -> list:
    return ["@SP", "AM=M-1", "D=M", f"@{name}", "D;JNE"]


def function_template(name: str, n_locals: int) -> list:
    lines = label_template(name)
    for _ in range(n_locals):
        lines += push_template("constant", 0)
    return lines


def call_template(name: str, n_args: int, return_label: str) -> list:
    lines = [f"@{return_label}", "D=A"] + push_d()
    for reg in FRAME:
        lines += [f"@{reg}", "D=M"] + push_d()
    # ARG = SP - n - 5 (SP уже после пяти push)
    lines += ["@SP", "D=M", f"@{n_args + 5}", "D=D-A", "@ARG", "M=D"]
    # LCL = SP
    lines += ["@SP", "D=M", "@LCL", "M=D"]
    return lines + goto_template(name) + label_template(return_label)


def return_template() -> list:
    # R13 = FRAME = LCL, R14 = RET = *(FRAME-5)
    lines = ["@LCL", "D=M", "@R13", "M=D", "@5", "A=D-A", "D=M", "@R14", "M=D"]
    # *ARG = pop(); SP = ARG + 1
    lines += ["@SP", "AM=M-1", "D=M", "@ARG", "A=M", "M=D"]
    lines += ["@ARG", "D=M+1", "@SP", "M=D"]
    # THAT, THIS, ARG, LCL = *(FRAME-1) .. *(FRAME-4)
    for reg in reversed(FRAME):
        lines += ["@R13", "AM=M-1", "D=M", f"@{reg}", "M=D"]
    return lines + ["@R14", "A=M", "0;JMP"]


def translate_arithmetic(op: str, ctx: TranslatorContext) -> list:
    if op in BINARY_OPS:
        return binary_template(BINARY_OPS[op])
    if op in UNARY_OPS:
        return unary_template(UNARY_OPS[op])
    if op in COMPARE_OPS:
        return compare_template(COMPARE_OPS[op], f"LABEL{ctx.next_label()}")
    raise ValueError(f"неизвестная операция {op}")


def translate_call(cmd: Call, ctx: TranslatorContext) -> list:
    # Уникальность метки даёт только счётчик, префикс - для читаемости.
    return_label = f"{ctx.current_function}$ret.{ctx.next_label()}"
    return call_template(cmd.name, cmd.n_args, return_label)


def translate(cmd: Command, ctx: TranslatorContext) -> list:
    # Этап 2: одна команда IR -> строки ассемблера Hack.
    if isinstance(cmd, Arithmetic):
        return translate_arithmetic(cmd.op, ctx)
    if isinstance(cmd, Push):
        return push_template(cmd.segment, cmd.index)
    if isinstance(cmd, Pop):
        return pop_template(cmd.segment, cmd.index)
    if isinstance(cmd, Label):
        return label_template(cmd.name)
    if isinstance(cmd, Goto):
        return goto_template(cmd.name)
    if isinstance(cmd, IfGoto):
        return if_goto_template(cmd.name)
    if isinstance(cmd, Function):
        ctx.current_function = cmd.name
        return function_template(cmd.name, cmd.n_locals)
    if isinstance(cmd, Call):
        return translate_call(cmd, ctx)
    if isinstance(cmd, Return):
        return return_template()
    raise TypeError(f"неизвестная команда: {cmd!r}")


def translate_program(ir: list, ctx: Optional[TranslatorContext] = None) -> list:
    # Склеиваем строки всех команд подряд, порядок сохраняется.
    ctx = ctx if ctx is not None else TranslatorContext()
    lines = []
    for cmd in ir:
        lines.extend(translate(cmd, ctx))
    return lines


def translate_annotated(prog: list, ctx: Optional[TranslatorContext] = None) -> list:
    # То же, но перед каждой группой строка-комментарий с исходной командой.
    ctx = ctx if ctx is not None else TranslatorContext()
    lines = []
    for cmd, source in prog:
        lines.append(f"// {source}")
        lines.extend(translate(cmd, ctx))
    return lines


def render(lines: list) -> str:
    return "".join(line + "\n" for line in lines)


def count_instructions(lines: list) -> int:
    # Метки и комментарии не занимают места в ROM.
    return sum(1 for line in lines if not line.startswith(("(", "//")))


@click.command()
@click.argument("src", type=click.Path(exists=True, dir_okay=False))
@click.option("--annotate", is_flag=True, help="писать исходную VM-команду комментарием")
def main(src, annotate):
    # UnicodeDecodeError - подкласс ValueError, битый файл тоже сюда.
    try:
        text = open(src, "r", encoding="utf-8").read()
        prog = to_ir_with_source(text)
    except ValueError as e:
        raise click.ClickException(f"{src}: {e}")

    if annotate:
        lines = translate_annotated(prog)
    else:
        lines = translate_program([cmd for cmd, _ in prog])

    # Пишем только после полной трансляции: при ошибке файла не будет.
    out = Path(src).with_suffix(".asm")
    open(out, "w", encoding="utf-8").write(render(lines))
    click.echo(f"Команд Hack: {count_instructions(lines)}")
    click.echo(f"Трансляция завершена: {out}")


if __name__ == "__main__":
    main()
