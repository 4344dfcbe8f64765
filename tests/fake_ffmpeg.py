"""Stand-in for ffmpeg used by the mux tests.

Reads every `-i pipe:N` input in order and writes the bytes to stdout.
`--mode fail` exits 1 at once, `--mode hang` writes a little then never ends.
"""
import os
import sys
import time


def input_fds(args):
    fds = []
    for flag, value in zip(args, args[1:]):
        if flag == "-i" and value.startswith("pipe:"):
            fds.append(int(value.split(":", 1)[1]))
    return fds


def main(argv):
    mode = "concat"
    if argv[:1] == ["--mode"]:
        mode, argv = argv[1], argv[2:]

    out = sys.stdout.buffer
    if mode == "fail":
        sys.stderr.write("pipe:3: Invalid data found when processing input\n")
        return 1

    if mode == "hang":
        out.write(b"ftyp-moov")
        out.flush()
        while True:
            time.sleep(1)

    for fd in input_fds(argv):
        with os.fdopen(fd, "rb") as pipe:
            while True:
                chunk = pipe.read(65536)
                if not chunk:
                    break
                out.write(chunk)
    out.flush()
    sys.stderr.write("muxing finished\n")
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
