from setuptools import setup, find_packages


def get_version():
    f = open('./VERSION', 'r', encoding='utf-8')
    version = f.readline().strip()
    f.close()
    return version


def get_long_descript():
    f = open('./README.rst', 'r', encoding='utf-8')
    long_descript = f.read()
    f.close()
    return long_descript


if __name__ == '__main__':
    setup(name='wsecho',
          version=get_version(),
          description="A minimal RFC 6455 WebSocket echo server and client on asyncio",
          long_description=get_long_descript(),
          python_requires='>=3.10',
          packages=find_packages(include=['wsecho', 'wsecho.*']),
          extras_require={
              'test': ['pytest>=7', 'pytest-asyncio', 'websockets>=10.1'],
              'tools': ['websockets>=10.1'],
          },
          entry_points={
              'console_scripts': ['wsecho=wsecho.cmds:main'],
          })
