def first():
    return 1


def second():
    value = first()
    return value * 2


def third():
    return 3
