import os


def read_config(path):
    if not os.path.exists(path):
        return {}
    with open(path) as f:
        return parse(f.read())


def parse(text):
    return dict(line.split("=", 1) for line in text.splitlines() if "=" in line)
