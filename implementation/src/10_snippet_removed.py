def obsolete():
    return "gone"
    # end of obsolete
