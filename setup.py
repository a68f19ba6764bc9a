"""
Setup file.
"""

import os

from setuptools import setup

URL = "https://github.com/firmpipe/firmpipe"
KEYWORDS = "embedded arduino avr avr-gcc avrdude compiler toolchain firmware microcontroller build-pipeline"
HERE = os.path.dirname(os.path.abspath(__file__))



if __name__ == "__main__":
    setup(
        keywords=KEYWORDS,
        url=URL,
        include_package_data=True)
