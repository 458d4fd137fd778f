"""
Walks through a SAML web single sign-on in a remote browser: open a
protected page of the service provider, get redirected to the identity
provider, log in and land back on the service provider.
"""
import logging
from urllib.parse import urlparse

from selenium.common.exceptions import TimeoutException, WebDriverException

from svcmon.nagios.contextmanagers import benchmark
from svcmon.nagios.plugin import ConnectionFailure, Plugin, VerificationFailure
from svcmon.nagios.ssoremotedriver import BROWSER_OPTIONS, SsoRemoteDriver
from svcmon.nagios.status import Status

logger = logging.getLogger(__name__)

DEFAULT_SUBMIT = "button[type='submit'], input[type='submit']"


class SamlSsoCheck(Plugin):
    """
    Log in to a SAML service provider through its identity provider using a
    Selenium webdriver hub (-H http://hub:4444/wd/hub).
    """

    shortname = 'SAML_SSO'
    default_timeout = 60
    measure_time = True

    def add_extra_args(self):
        self.arg_parser.add_argument('-b', '--browser', default='firefox',
                                     choices=sorted(BROWSER_OPTIONS),
                                     help='browser to use (default: %(default)s)')
        self.arg_parser.add_argument('-u', '--url', required=True,
                                     help='protected page of the service provider')
        self.arg_parser.add_argument('-U', '--username', required=True)
        self.arg_parser.add_argument('-P', '--password', required=True)
        self.arg_parser.add_argument('--idp-host',
                                     help='host name the login form must be served from')
        self.arg_parser.add_argument('--username-field', default='j_username',
                                     help='name of the user name input (default: %(default)s)')
        self.arg_parser.add_argument('--password-field', default='j_password',
                                     help='name of the password input (default: %(default)s)')
        self.arg_parser.add_argument('--submit', default=DEFAULT_SUBMIT,
                                     help='CSS selector of the login button')
        self.arg_parser.add_argument('-e', '--expect',
                                     help='text the page after the login must contain')
        self.arg_parser.add_argument('--step-timeout', type=int, default=10,
                                     help='seconds to wait for each page (default: %(default)s)')

    def init_driver(self):
        try:
            return SsoRemoteDriver.connect(self.args.host, self.args.browser)
        except WebDriverException as e:
            raise ConnectionFailure('Could not initialize %s driver at %s: %s' %
                                    (self.args.browser, self.args.host, e.msg))

    def time_threshold(self):
        # -w/-c apply to the single steps
        return None

    def cleanup(self):
        if getattr(self, 'driver', None) is not None:
            try:
                self.driver.quit()
            except WebDriverException:
                logger.warning('could not quit driver', exc_info=True)

    def verify(self, condition, message):
        if not condition:
            raise VerificationFailure(message)

    def login_form(self):
        step = self.args.step_timeout
        try:
            user_elem = self.driver.wait_for_field(self.args.username_field, step)
            password_elem = self.driver.wait_for_field(self.args.password_field, step)
        except TimeoutException:
            raise VerificationFailure('No login form found at %s' % self.driver.current_url)
        return user_elem, password_elem

    def run(self, result):
        self.driver = self.init_driver()
        driver = self.driver
        sp_host = urlparse(self.args.url).hostname
        warning, critical = self.args.warning, self.args.critical

        with benchmark(result, 'idp_redirect', warning, critical):
            try:
                driver.get(self.args.url)
            except WebDriverException as e:
                raise ConnectionFailure('Could not open %s: %s' % (self.args.url, e.msg))
            user_elem, password_elem = self.login_form()

        if self.args.idp_host:
            self.verify(driver.current_host() == self.args.idp_host,
                        'Login form served by %s instead of %s' %
                        (driver.current_host(), self.args.idp_host))

        user_elem.send_keys(self.args.username)
        password_elem.send_keys(self.args.password)
        try:
            submit = driver.wait_for_css(self.args.submit, self.args.step_timeout)
        except TimeoutException:
            raise VerificationFailure('No login button matching %s' % self.args.submit)

        with benchmark(result, 'login', warning, critical):
            submit.click()
            self.verify(driver.wait_for_host(sp_host, self.args.step_timeout),
                        'Not redirected back to %s after login, stuck at %s' %
                        (sp_host, driver.current_url))

        if self.args.expect:
            self.verify(driver.is_text_present(self.args.expect),
                        "Text '%s' not found after login" % self.args.expect)

        broken = driver.get_broken_images()
        if broken:
            result.add_message(Status.WARNING, 'broken images: %s' % ', '.join(broken))

        result.add_message(Status.OK, 'logged in as %s' % self.args.username)


def main():
    SamlSsoCheck().start()


if __name__ == '__main__':
    main()
