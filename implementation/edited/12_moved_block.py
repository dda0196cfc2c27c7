def first():
    return 1


def third():
    return 3


def second():
    value = first()
    return value * 2
