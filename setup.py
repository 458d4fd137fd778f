from setuptools import setup

setup(
    name='svcmon',
    version='0.1',
    packages=['svcmon', 'svcmon.nagios', 'svcmon.checks'],
    install_requires=[
        'selenium>=4.10',
        'requests>=2.20',
        'pysnmp>=7.1',
        'dnspython>=2.0',
    ],
    extras_require={
        'test': ['pytest'],
    },
    entry_points={
        'console_scripts': [
            'check_pptp=svcmon.checks.pptp:main',
            'check_radsec=svcmon.checks.radsec:main',
            'check_saml_metadata=svcmon.checks.samlmetadata:main',
            'check_ats=svcmon.checks.ats:main',
            'check_saml_sso=svcmon.checks.samlsso:main',
            'check_snmp_procs=svcmon.checks.snmpprocs:main',
        ],
    },
    license='Apache License, 2.0',
    description='Nagios plugins for network services',
    long_description='''
        Monitoring plugins for PPTP, RadSec, SAML metadata and single sign-on,
        APC transfer switches and SNMP process tables, built on a small library
        providing Nagios exit codes, threshold ranges and performance data.''',
    classifiers=[
        'Development Status :: 3 - Alpha',
        'Environment :: Console',
        'Intended Audience :: System Administrators',
        'Programming Language :: Python',
        'Programming Language :: Python :: 3',
    ],
    python_requires='>=3.8',
)
