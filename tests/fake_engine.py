"""
Scripted stand-in for a USI engine, used by the end-to-end tests.

Usage: python fake_engine.py MODE

Modes:
    mate     - from the start position Black has candidates (1d1c first, scored
               as mate in 1); any later position has no legal move
    timeout  - handshake works, searches never finish
    silent   - never answers the handshake
    garbage  - searches answer with an unexpected line
    crash    - exits as soon as a search starts
"""

import sys

CANDIDATE_MOVES = ["1d1c", "3d3c", "2e2d", "1e2d", "3e2d"]


def say(line):
    sys.stdout.write(line + "\n")
    sys.stdout.flush()


def main():
    mode = sys.argv[1] if len(sys.argv) > 1 else "mate"
    multipv = 1
    moves = []

    for raw in sys.stdin:
        line = raw.strip()
        if not line:
            continue
        tokens = line.split()
        command = tokens[0]

        if command == "quit":
            return
        if command == "usi":
            if mode == "silent":
                continue
            say("id name FakeEngine")
            say("id author tests")
            say("usiok")
        elif command == "isready":
            if mode != "silent":
                say("readyok")
        elif command == "setoption" and len(tokens) >= 5 and tokens[2] == "MultiPV":
            if tokens[4].isdigit():
                multipv = int(tokens[4])
        elif command == "position":
            moves = tokens[tokens.index("moves") + 1:] if "moves" in tokens else []
        elif command == "go":
            if mode == "timeout":
                continue
            if mode == "crash":
                return
            if mode == "garbage":
                say("hello there")
                continue
            if moves:
                say("info depth 0 score mate 0")
                say("bestmove resign")
                continue
            count = min(multipv, len(CANDIDATE_MOVES))
            say("info depth 1 seldepth 1 multipv 1 score cp 10 nodes 5 pv 1d1c")
            for i in range(count):
                score = "mate 1" if i == 0 else f"cp {-100 * i}"
                say(f"info depth 2 seldepth 2 multipv {i + 1} score {score} nodes 42 "
                    f"nps 1000 time 1 pv {CANDIDATE_MOVES[i]}")
            say(f"bestmove {CANDIDATE_MOVES[0]}")


if __name__ == "__main__":
    main()
