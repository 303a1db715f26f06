#!/usr/bin/env python3
"""
Run script for the evaluation worker
"""
from drill_eval.worker import main

if __name__ == "__main__":
    main()
