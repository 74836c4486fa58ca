import csv
import click

# Размер RAM машины Hack (адреса 0..32767).
RAM_SIZE = 32768

# Предопределённые символы ассемблера Hack.
PREDEFINED = {
    "SP": 0, "LCL": 1, "ARG": 2, "THIS": 3, "THAT": 4,
    "SCREEN": 16384, "KBD": 24576,
    **{f"R{i}": i for i in range(16)},
}

# Переменные (@foo без метки) выделяются начиная с этого адреса.
VARIABLES_BASE = 16

# Вычисления ALU. X - это A или M, в зависимости от бита a команды.
# Коммутативные записи (X+D, X&D, X|D) тоже принимаются.
COMP = {
    "0": lambda d, x: 0,
    "1": lambda d, x: 1,
    "-1": lambda d, x: -1,
    "D": lambda d, x: d,
    "X": lambda d, x: x,
    "!D": lambda d, x: ~d,
    "!X": lambda d, x: ~x,
    "-D": lambda d, x: -d,
    "-X": lambda d, x: -x,
    "D+1": lambda d, x: d + 1,
    "X+1": lambda d, x: x + 1,
    "D-1": lambda d, x: d - 1,
    "X-1": lambda d, x: x - 1,
    "D+X": lambda d, x: d + x,
    "X+D": lambda d, x: d + x,
    "D-X": lambda d, x: d - x,
    "X-D": lambda d, x: x - d,
    "D&X": lambda d, x: d & x,
    "X&D": lambda d, x: d & x,
    "D|X": lambda d, x: d | x,
    "X|D": lambda d, x: d | x,
}

JUMPS = {
    "": lambda v: False,
    "JGT": lambda v: v > 0,
    "JEQ": lambda v: v == 0,
    "JGE": lambda v: v >= 0,
    "JLT": lambda v: v < 0,
    "JNE": lambda v: v != 0,
    "JLE": lambda v: v <= 0,
    "JMP": lambda v: True,
}


def to_signed(x: int, bits: int) -> int:
    # Преобразование из unsigned в signed: в Hack все слова 16-битные со знаком.
    if x >= (1 << (bits - 1)):
        x -= (1 << bits)
    return x


def clean(s: str) -> str:
    return s.split("//", 1)[0].strip()


def parse_c(line: str, n: int) -> dict:
    # dest=comp;jump -> поля C-команды
    dest, _, rest = line.rpartition("=")
    comp, _, jump = rest.partition(";")
    if jump not in JUMPS:
        raise ValueError(f"строка {n}: неизвестный переход {jump}")
    if any(c not in "AMD" for c in dest) or len(set(dest)) != len(dest):
        raise ValueError(f"строка {n}: неверный dest {dest}")
    m = "M" in comp
    key = comp.replace("M", "X") if m else comp.replace("A", "X")
    if key not in COMP:
        raise ValueError(f"строка {n}: неизвестное вычисление {comp}")
    return {"op": "C", "dest": dest, "comp": key, "m": m, "jump": jump}


def assemble(text: str) -> list:
    # Проход 1: метки (LABEL) получают адрес следующей команды.
    lines = []
    symbols = dict(PREDEFINED)
    for i, line in enumerate(text.splitlines(), 1):
        line = clean(line)
        if not line:
            continue
        if line.startswith("("):
            if not line.endswith(")"):
                raise ValueError(f"строка {i}: неверная метка {line}")
            name = line[1:-1]
            if name in symbols:
                raise ValueError(f"строка {i}: метка {name} уже определена")
            symbols[name] = len(lines)
        else:
            lines.append((i, line))

    # Проход 2: разбор команд и выделение переменных.
    rom = []
    next_var = VARIABLES_BASE
    for i, line in lines:
        if not line.startswith("@"):
            rom.append(parse_c(line, i))
            continue
        token = line[1:]
        if token.isdigit():
            value = int(token)
        else:
            if not token:
                raise ValueError(f"строка {i}: пустой адрес")
            if token not in symbols:
                symbols[token] = next_var
                next_var += 1
            value = symbols[token]
        if value >= RAM_SIZE:
            raise ValueError(f"строка {i}: {value} не влезает в 15 бит")
        rom.append({"op": "A", "value": value})
    return rom


def read(ram: list, addr: int) -> int:
    if not (0 <= addr < len(ram)):
        raise ValueError(f"Выход за память: {addr}")
    return ram[addr]


def run_program(rom: list, ram: list, max_steps: int = 1_000_000) -> int:
    # Главный цикл: fetch -> decode -> execute. Возвращает число шагов.
    a = d = 0
    pc = 0
    steps = 0

    while pc < len(rom):
        if steps >= max_steps:
            raise RuntimeError(f"Превышен лимит шагов {max_steps}, pc={pc}")
        steps += 1
        ins = rom[pc]

        if ins["op"] == "A":
            a = ins["value"]
            pc += 1
            continue

        x = read(ram, a) if ins["m"] else a
        v = to_signed(COMP[ins["comp"]](d, x) & 0xFFFF, 16)

        # Запись в M идёт по старому значению A, переход тоже.
        target = a
        if "M" in ins["dest"]:
            read(ram, a)
            ram[a] = v
        if "A" in ins["dest"]:
            a = v
        if "D" in ins["dest"]:
            d = v

        if JUMPS[ins["jump"]](v):
            # @END / 0;JMP на самого себя - так программы Hack останавливаются.
            if target < 0:
                raise ValueError(f"Переход за пределы программы: {target}, pc={pc}")
            prev = rom[target] if target < len(rom) else None
            if target == pc - 1 and prev["op"] == "A" and prev["value"] == target:
                break
            pc = target
        else:
            pc += 1

    return steps


def parse_ram_spec(spec: str) -> tuple:
    # "SP=256" или "0=256" -> (0, 256)
    addr, sep, value = spec.partition("=")
    if not sep:
        raise ValueError(f"ожидалось АДРЕС=ЗНАЧЕНИЕ, получено {spec!r}")
    addr = PREDEFINED[addr] if addr in PREDEFINED else int(addr, 0)
    if not (0 <= addr < RAM_SIZE):
        raise ValueError(f"Выход за память: {addr}")
    # Значение приводим к 16-битному слову, как при записи из программы.
    return addr, to_signed(int(value, 0) & 0xFFFF, 16)


def parse_mem_range(mem_range: str) -> tuple:
    # "start:end" -> (start, end), обе границы включительно
    a, sep, b = mem_range.partition(":")
    if not sep:
        raise ValueError(f"ожидалось НАЧАЛО:КОНЕЦ, получено {mem_range!r}")
    start, end = int(a, 0), int(b, 0)
    if not (0 <= start <= end < RAM_SIZE):
        raise ValueError(f"Выход за память: {start}:{end}")
    return start, end


def dump_memory(mem: list, start: int, end: int, path: str) -> None:
    # CSV дамп памяти: address,value
    with open(path, "w", newline="", encoding="utf-8") as f:
        w = csv.writer(f)
        w.writerow(["address", "value"])
        for a in range(start, end + 1):
            w.writerow([a, mem[a]])


@click.command()
@click.argument("program_asm", type=click.Path(exists=True, dir_okay=False))
@click.argument("dump_csv", type=click.Path(dir_okay=False))
@click.argument("mem_range")  # start:end
@click.option("--ram", "ram_specs", multiple=True, help="начальное значение RAM, АДРЕС=ЗНАЧЕНИЕ")
@click.option("--max-steps", default=1_000_000, show_default=True, help="лимит шагов")
def main(program_asm, dump_csv, mem_range, ram_specs, max_steps):
    try:
        start, end = parse_mem_range(mem_range)
        rom = assemble(open(program_asm, "r", encoding="utf-8").read())
        ram = [0] * RAM_SIZE
        for spec in ram_specs:
            addr, value = parse_ram_spec(spec)
            ram[addr] = value
        steps = run_program(rom, ram, max_steps)
    except (ValueError, RuntimeError) as e:
        raise click.ClickException(str(e))

    dump_memory(ram, start, end, dump_csv)
    click.echo(f"Выполнено шагов: {steps}")


if __name__ == "__main__":
    main()
