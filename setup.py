from setuptools import setup, find_packages

with open('requirements.txt') as f:
    requirements = f.readlines()

with open('test-requirements.txt') as f:
    test_requirements = f.readlines()

setup(name='zig-pkg-checker',
      description='Builds Zig packages with every supported Zig version in Docker',
      version='0.1.0',
      classifiers=[
          "Programming Language :: Python",
          "Programming Language :: Python :: 3",
          "Topic :: Software Development :: Build Tools"
      ],
      keywords='zig package build docker compatibility',
      license='MIT',
      python_requires='>=3.8',
      packages=find_packages(exclude=['tests', 'tests.*']),
      include_package_data=True,
      zip_safe=False,
      install_requires=requirements,
      extras_require={'test': test_requirements},
      entry_points={
          'console_scripts': ['zig_pkg_checker_daemon = zig_pkg_checker.scheduler.main:main',
                              'zig_pkg_checker_manager = zig_pkg_checker.manage:main']
      },
      data_files=[('/etc/zig-pkg-checker/', ['conf/config.py'])] + [
          ('/usr/share/zig-pkg-checker/docker/zig-%s/' % version,
           ['docker/zig-%s/Dockerfile' % version, 'docker/zig-%s/build.sh' % version])
          for version in ('master', '0.14.0', '0.13.0', '0.12.0')],
      )
