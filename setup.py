import io

import setuptools

name = 'chaosnetem'
desc = 'Chaos Toolkit Extension for tc netem network faults in containers.'

author = "chaosnetem contributors"
license = 'Apache License 2.0'

packages = setuptools.find_packages(include=['chaosnetem', 'chaosnetem.*'])

test_require = []
with io.open('requirements-dev.txt') as f:
    test_require = [l.strip() for l in f if l.strip() and not l.startswith('#')]

install_require = []
with io.open('requirements.txt') as f:
    install_require = [l.strip() for l in f if l.strip() and not l.startswith('#')]

setup_params = dict(
    name=name,
    version='0.1.0',
    description=desc,
    author=author,
    license=license,
    packages=packages,
    install_requires=install_require,
    tests_require=test_require,
    extras_require={'test': test_require},
    entry_points={
        'console_scripts': [
            'chaosnetem = chaosnetem.cli:run',
        ],
    },
    python_requires='>=3.10'
)


def main():
    """Package installation entry point."""
    setuptools.setup(**setup_params)


if __name__ == '__main__':
    main()
