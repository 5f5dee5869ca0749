from setuptools import setup, find_packages

with open("requirements.txt") as f:
    requirements = f.read().splitlines()

setup(
    name="posenet_decoding",
    version="1.0.0",
    author="IIT Tirupati - Intelligent Systems Lab",
    description="Single and multi-person PoseNet keypoint decoding from heatmap, offset and displacement tensors",
    packages=find_packages(exclude=["tests", "tests.*"]),
    py_modules=["main"],
    install_requires=requirements,
    extras_require={"test": ["pytest>=7"]},
    python_requires=">=3.9",
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
    ],
)
