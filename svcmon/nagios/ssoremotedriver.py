from urllib.parse import urlparse

from selenium import webdriver
from selenium.common.exceptions import TimeoutException
from selenium.webdriver.common.by import By
from selenium.webdriver.support import expected_conditions
from selenium.webdriver.support.ui import WebDriverWait

BROWSER_OPTIONS = {
    'chrome': webdriver.ChromeOptions,
    'firefox': webdriver.FirefoxOptions,
    'edge': webdriver.EdgeOptions,
    'safari': webdriver.SafariOptions,
}


def browser_options(browser, headless=True):
    options = BROWSER_OPTIONS[browser]()
    if headless and browser in ('chrome', 'edge'):
        options.add_argument('--headless=new')
    elif headless and browser == 'firefox':
        options.add_argument('-headless')
    return options


class SsoRemoteDriver(webdriver.Remote):

    """
    Remote webdriver with a number of convenience functions for monitoring
    a web single-sign-on flow.
    """

    @classmethod
    def connect(cls, hub_url, browser, headless=True):
        return cls(command_executor=hub_url, options=browser_options(browser, headless))

    def is_text_present_in_elem(self, elem, text):
        """
        Verifies that the given text is present in the `text` property of a
        Selenium Element object.
        """
        return text in elem.text

    def is_text_present(self, text):
        return self.is_text_present_in_elem(self.find_element(By.TAG_NAME, 'body'), text)

    def current_host(self):
        return urlparse(self.current_url).hostname

    def wait_for_host(self, host, timeout=10):
        """
        Waits until the browser has been redirected to `host`. Returns False
        instead of raising when that does not happen in time.
        """
        try:
            WebDriverWait(self, timeout).until(lambda driver: driver.current_host() == host)
        except TimeoutException:
            return False
        return True

    def get_broken_images(self):
        """
        Sources of the images on the current page that failed to load. An
        image that finished loading with no natural size is broken, the
        filtering happens in the browser in a single script call.
        """
        return self.execute_script(
            "return Array.from(document.images)"
            ".filter(function (img) { return img.complete && !img.naturalWidth; })"
            ".map(function (img) { return img.src; });") or []

    def _wait_for_element(self, by, value, timeout):
        return WebDriverWait(self, timeout).until(
            expected_conditions.presence_of_element_located((by, value)),
            'no element %s=%s after %s seconds' % (by, value, timeout))

    def wait_for_css(self, selector, timeout=5):
        return self._wait_for_element(By.CSS_SELECTOR, selector, timeout)

    def wait_for_field(self, name, timeout=5):
        return self._wait_for_element(By.NAME, name, timeout)
