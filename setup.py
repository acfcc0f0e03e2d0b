from setuptools import setup, find_packages


if __name__ == "__main__":
    setup(
        name="dsgefilter",
        version="0.1.0",
        description="Kalman filter for linear Gaussian state space models with regime switches",
        platforms="linux",
        packages=find_packages(),
        python_requires=">=3.8",
        install_requires=[
            "numpy",
            "pandas",
            "scipy",
            "pyyaml",
            "numba",
        ],
        extras_require={
            "test": ["pytest"],
        },
        include_package_data=True,
    )
