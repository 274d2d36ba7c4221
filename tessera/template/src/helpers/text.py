"""Template helpers; every public function becomes a Jinja filter and global."""


def shout(value):
    return str(value).upper()
